from enum import Enum


class Role(str, Enum):
    CUSTOMER = "customer"
    ARTISAN = "artisan"
    ADMIN = "admin"


class Capability(str, Enum):
    MANAGE_OWN_CART = "manage_cart"
    VIEW_ANY_CART = "view_any_cart"
    PLACE_ORDERS = "place_orders"
    VIEW_ANY_ORDER = "view_any_order"
    FULFIL_SUBORDERS = "fulfil_suborders"
    VIEW_ANY_SUBORDER = "view_any_suborder"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.CUSTOMER: frozenset({Capability.MANAGE_OWN_CART, Capability.PLACE_ORDERS}),
    Role.ARTISAN: frozenset({Capability.FULFIL_SUBORDERS}),
    Role.ADMIN: frozenset({
        Capability.VIEW_ANY_CART,
        Capability.VIEW_ANY_ORDER,
        Capability.VIEW_ANY_SUBORDER,
    }),
}


def capabilities_for(role: str | None) -> frozenset[Capability]:
    try:
        return ROLE_CAPABILITIES[Role(role)]
    except ValueError:
        return frozenset()
