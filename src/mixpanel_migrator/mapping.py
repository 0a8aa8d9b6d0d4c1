"""Mixpanel -> PostHog event name mapping.

The table is kept verbatim: existing PostHog dashboards and insights are
built on these destination names.
"""
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

NAME_MAPPING: Mapping[str, str] = MappingProxyType({
    # Apply page
    "typeformSubmissionError": "applicant_apply--typeform_submission_error",
    "completedApplicantTypeform": "applicant_apply--typeform_submission_success",

    # Auth
    "applicantSignUp": "applicant_sign_up",

    # Messages
    "firstMessageSent": "first_message_send",

    # Sessions
    "coachingSessionScheduled": "coaching_session_scheduled",
    "introCallScheduled": "intro_call_scheduled",

    # Subscriptions
    "subscriptionStarted": "manage_subscription--subscription_start",
    "subscriptionCanceled": "manage_subscription--subscription_cancel",

    # Purchases
    "purchase": "purchase_complete",
    "completeGuestCheckout": "checkout--guest_checkout_complete",
    "completeGuestSignup": "checkout--guest_signup_complete",

    # Event cards
    "Click Event Card Register - Navigate to Luma": "event_card--navigate_to_luma_click",
    "EventCard Click": "event_card--click",

    # Vouch
    "Vouch Modal Open": "vouch_modal--open",
    "Vouch Modal Submit": "vouch_modal--submit",
    "Vouch Outcome Submit": "vouch_outcome_step--submit",

    # Events page
    "EventsPage - click - Class": "events_page--class_card_click",

    # Coach
    "viewedIntroVideo": "coach_profile--intro_video_view",
    "viewedCoachProfile": "coach_profile--view",
    "clickedMessageCoach": "coach_message_cta--message_coach_click",
    "coachMessageCTA - messaged coach": "coach_message_cta--message_coach_success",

    # Schedule modal
    "SCHEDULE_MODAL_EVENTS.STEP_CHANGE": "schedule_modal--step_change",
    "SCHEDULE_MODAL_EVENTS.CLOSE": "schedule_modal--close",

    # Search results page
    "clickedSRPPackage": "srp--leland_package_click",
    "SRP - click - Search Bar": "srp--search_bar_focus",
    "SRP - filter - Search Bar": "srp--search_bar_filter",
    "SRP - click - Featured Filter": "srp--featured_filter_click",
    "SRP - click - Booked Coach": "srp--booked_coach_click",
    "Cohort Banner Click": "srp--cohort_banner_click",
    "SRP - click - Class": "srp--class_click",
    "SRP - click - Leland Package": "srp--leland_package_click",
    "SRP - click - View more packages": "srp--view_more_packages_click",
    "SRP - click - Offering Package": "srp--offering_package_click",
    "SRP - click - Sort": "srp--coach_filter_section_sort",
    "SRP - click - Coach Card": "srp--coach_card_click",
    "SRP - click - Coach Pagination": "srp--coach_pagination_click",
    "SRP - click - Talk to a Team Member button": "srp--talk_to_a_team_member_button_click",

    # Classes
    "Enroll Free Event": "free_event--enroll",
    "Unenroll Free Event": "free_event--unenroll",

    # Meetings
    "coachingSessionAttended": "meeting--coaching_session_attend",

    # Bootcamps
    "Bootcamp Card Click": "bootcamp_card--click",

    # Articles
    "Article - Subscribe": "article_page--email_list_subscribe",
    "Article - Schedule a strategy call": "article_page--schedule_call_button_click",

    # Event banner
    "Event Banner Click": "article_page--event_banner_click",

    # Page view
    "pageView": "$pageview",
})

BANNER_CLICK_EVENT = "Leland+ Banner Click"
BANNER_CLICK_DEFAULT = "leland_plus_banner--click"
BANNER_CLICK_BY_SOURCE: Mapping[str, str] = MappingProxyType({
    "srp": "srp--leland_plus_banner_click",
    "article": "article_page--leland_plus_banner_click",
    "post_checkout": "post_checkout--leland_plus_banner_click",
})

MP_WEB_PAGE_VIEW = "$mp_web_page_view"


def banner_click_name(properties: Optional[Dict[str, Any]]) -> str:
    source = (properties or {}).get("source")
    if not isinstance(source, str):
        return BANNER_CLICK_DEFAULT
    return BANNER_CLICK_BY_SOURCE.get(source.lower(), BANNER_CLICK_DEFAULT)


def map_event_name(event: str, properties: Optional[Dict[str, Any]] = None) -> str:
    if event == MP_WEB_PAGE_VIEW:
        return "$pageview"
    if event == BANNER_CLICK_EVENT:
        return banner_click_name(properties)
    return NAME_MAPPING.get(event, event)
