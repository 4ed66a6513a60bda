# Overview: Pure role authorization decision used by both state machines.

"""
Role Authorization Gate

can_perform() is a pure function: no database access, no Flask context.
Services look the actor's role up, call the gate, and act on the verdict.

Verdicts:
- ALLOW: the actor may perform the transition directly.
- REQUIRE_APPROVAL: the actor may only file a request that a
  high-privilege actor resolves (cancelling a confirmed sale as STAFF).
- DENY: no path exists for this actor.
"""

from .definitions import Action, APPROVAL_PATHS, ROLE_CAPABILITIES


class Verdict:
    ALLOW = "ALLOW"
    REQUIRE_APPROVAL = "REQUIRE_APPROVAL"
    DENY = "DENY"


def can_perform(actor_role: str | None, action: str, order_context: dict | None = None) -> str:
    capabilities = ROLE_CAPABILITIES.get(actor_role)
    if capabilities is None:
        return Verdict.DENY

    # Anyone who can work a cart can throw away a DRAFT
    if (
        action == Action.CANCEL_SALE
        and order_context
        and order_context.get("status") == "DRAFT"
        and Action.EDIT_SALE in capabilities
    ):
        return Verdict.ALLOW

    if action in capabilities:
        return Verdict.ALLOW

    request_action = APPROVAL_PATHS.get(action)
    if request_action and request_action in capabilities:
        return Verdict.REQUIRE_APPROVAL

    return Verdict.DENY
