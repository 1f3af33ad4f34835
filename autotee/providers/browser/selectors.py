"""CSS selectors for the booking website's front end.

Each entry is a comma-separated selector list so that small markup changes
(a renamed class, an ``id`` instead of a ``name``) still match one of the
alternatives.  Everything markup-dependent in the web provider goes through
this table.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["WebSelectors", "DEFAULT_SELECTORS"]


@dataclass(frozen=True)
class WebSelectors:
    # Login
    email_input: str = 'input[type="email"], input[name="email"], #email'
    password_input: str = 'input[type="password"], input[name="password"], #password'
    login_button: str = 'button[type="submit"], input[type="submit"], .login-btn, #login-btn'
    two_factor_input: str = 'input[name="code"], input[placeholder*="code"], .two-factor-input'

    # Course search
    course_search: str = 'input[placeholder*="course"], .course-search, #course-search'
    course_result: str = ".course-result, .course-item, .search-result"

    # Date and party size
    date_input: str = 'input[type="date"], .date-picker, #date-input'
    party_size_select: str = 'select[name*="party"], .party-size-select, #party-size'

    # Tee time cards
    tee_time_card: str = ".tee-time-card, .booking-slot, .time-slot-card"
    tee_time_time: str = ".time, .tee-time, .slot-time"
    tee_time_price: str = ".price, .cost, .amount"
    tee_time_holes: str = ".holes, .course-type, .round-type"
    tee_time_spots: str = ".spots, .available-spots, .players-available"
    walking_option: str = 'input[value*="walk"], .walking-option, #walking'
    cart_option: str = 'input[value*="cart"], .cart-option, #cart'
    book_button: str = '.book-btn, .reserve-btn, .select-btn, button[data-action="book"]'

    # Booking form
    player_name_input: str = 'input[name*="player"], .player-name, .golfer-name'
    confirm_booking: str = ".confirm-booking, .complete-booking, .finalize-btn"

    # Confirmation page
    confirmation_number: str = ".confirmation-number, .booking-reference, .confirmation-code"
    confirmation_message: str = ".success-message, .confirmation-message, .booking-success"


DEFAULT_SELECTORS = WebSelectors()
