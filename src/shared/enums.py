from enum import Enum


class InteractionType(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class DeviceType(str, Enum):
    WEB = "web"
    MOBILE = "mobile"
    PHONE = "phone"


class Intent(str, Enum):
    PRODUCT_SEARCH = "product_search"
    ADD_TO_CART = "add_to_cart"
    CHECKOUT = "checkout"
    GENERAL_HELP = "general_help"
    FUNNEL_NAVIGATION = "funnel_navigation"
    ORDER_STATUS = "order_status"
    UNKNOWN = "unknown"


class ActionType(str, Enum):
    ADD_TO_CART = "add_to_cart"
    SEARCH_PRODUCTS = "search_products"
    NAVIGATE_FUNNEL = "navigate_funnel"
    NAVIGATE_TO_CHECKOUT = "navigate_to_checkout"
    SHOW_ORDERS = "show_orders"


class NotificationEvent(str, Enum):
    SESSION_STARTED = "voice_session_started"
    VOICE_INTERACTION = "voice_interaction"
    SESSION_ENDED = "voice_session_ended"
