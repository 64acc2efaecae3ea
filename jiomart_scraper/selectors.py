"""Centralised selectors for JioMart search and delivery-location flows.

Tuples are ordered by priority and consumed first-match-wins; they are never
merged into a single CSS union.
"""

# ==== LOCATION SERVICES OVERLAY ====
LOCATION_OVERLAY = "div.alcohol-popup"
LOCATION_OVERLAY_CLOSE = (
    "button#btn_location_close_icon",
    "button.close-privacy",
    "button.close-icon",
)
LOCATION_OVERLAY_MANUAL = "button#select_location_popup"

# ==== DELIVERY LOCATION EDITOR ====
LOCATION_TRIGGERS = (
    "button#btn_pin_code_delivery",
    "button.header-main-pincode-address",
    "span#delivery_city_pincode",
)
LOCATION_INDICATOR = "button#btn_pin_code_delivery, span#delivery_city_pincode"
DELIVERY_POPUP = "div#delivery_popup"
DELIVERY_CONTENT = "#delivery-content"
ENTER_PINCODE_BUTTON = "button#btn_enter_pincode"
PINCODE_FORM = "div#delivery_enter_pincode"
PINCODE_INPUT = "input#rel_pincode"
PINCODE_SUCCESS = "div#delivery_pin_msg.field-success"
PINCODE_MESSAGE = "div#delivery_pin_msg"
PINCODE_SUBMIT = "button#btn_pincode_submit"
DELIVERY_POPUP_CLOSE = "button#close_delivery_popup"
BACKDROP = "div.backdrop"

# ==== SEARCH RESULTS ====
RESULT_READY = (
    "li.ais-InfiniteHits-item",
    "a.plp-card-wrapper",
    "div.plp-card-container",
    "div.plp-card-image",
)
CARD = "li.ais-InfiniteHits-item"
CARD_LINK = "a.plp-card-wrapper"
CARD_GTM = ".gtmEvents"
CARD_NAME = "div.plp-card-details-name"
CARD_IMAGE = "img.lazyloaded, img.lazyautosizes"
CARD_PRICE = "span.jm-heading-xxs"
CARD_WAS_PRICE = "span.line-through"
CARD_BADGE = "span.jm-badge"
CARD_VEG_ICON = "img[src*='icon-veg']"
CARD_ADD_BUTTON = "button.addtocartbtn"
