# Overview: Roles, actions and the capability set each role holds.


class Role:
    """Staff roles, highest privilege first."""
    OWNER = "OWNER"
    MOD = "MOD"
    STAFF = "STAFF"

    ALL = (OWNER, MOD, STAFF)
    HIGH_PRIVILEGE = (OWNER, MOD)


class Action:
    """Transitions and reads the core can be asked to perform."""
    # -- SALES --
    START_SALE = "START_SALE"
    EDIT_SALE = "EDIT_SALE"                  # add/update/remove items, order metadata
    CONFIRM_SALE = "CONFIRM_SALE"
    CANCEL_SALE = "CANCEL_SALE"
    RETURN_SALE = "RETURN_SALE"
    VIEW_SALES = "VIEW_SALES"

    # -- CANCELLATION REQUESTS --
    REQUEST_CANCELLATION = "REQUEST_CANCELLATION"
    RESOLVE_CANCELLATION = "RESOLVE_CANCELLATION"

    # -- STOCK-IN --
    CREATE_STOCK_IN = "CREATE_STOCK_IN"
    UPDATE_STOCK_IN = "UPDATE_STOCK_IN"
    APPROVE_STOCK_IN = "APPROVE_STOCK_IN"    # approve and reject
    RECEIVE_STOCK_IN = "RECEIVE_STOCK_IN"
    CANCEL_STOCK_IN = "CANCEL_STOCK_IN"
    VIEW_STOCK_IN = "VIEW_STOCK_IN"

    # -- INVENTORY / REPORTS --
    VIEW_INVENTORY = "VIEW_INVENTORY"
    VIEW_REPORTS = "VIEW_REPORTS"


# Available to any authenticated actor with inventory access
BASE_ACTIONS = frozenset({
    Action.START_SALE,
    Action.EDIT_SALE,
    Action.CONFIRM_SALE,
    Action.VIEW_SALES,
    Action.REQUEST_CANCELLATION,
    Action.CREATE_STOCK_IN,
    Action.UPDATE_STOCK_IN,
    Action.RECEIVE_STOCK_IN,
    Action.VIEW_STOCK_IN,
    Action.VIEW_INVENTORY,
})

MANAGER_ACTIONS = frozenset({
    Action.CANCEL_SALE,
    Action.RETURN_SALE,
    Action.RESOLVE_CANCELLATION,
    Action.CANCEL_STOCK_IN,
    Action.VIEW_REPORTS,
})

OWNER_ACTIONS = frozenset({
    Action.APPROVE_STOCK_IN,
})

ROLE_CAPABILITIES = {
    Role.OWNER: BASE_ACTIONS | MANAGER_ACTIONS | OWNER_ACTIONS,
    Role.MOD: BASE_ACTIONS | MANAGER_ACTIONS,
    Role.STAFF: BASE_ACTIONS,
}

# Direct action -> the request action that stands in for it
APPROVAL_PATHS = {
    Action.CANCEL_SALE: Action.REQUEST_CANCELLATION,
}
