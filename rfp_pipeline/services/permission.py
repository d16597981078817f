"""
RFP Pipeline — Actor & Capability Service

Every transition declares the capability it requires and every caller is an
explicit ``Actor`` carrying the capabilities granted to it.  Capabilities
come from a closed matrix keyed by (department, role); department-type
strings are resolved through a closed lookup table, never by substring.

Usage:
    from rfp_pipeline.services.permission import Actor, Capability, check_capability

    actor = Actor.from_claims({"sub": "s1key", "email": "s1@acme.in",
                               "role": "department_user",
                               "department_type": "office_sales"})
    check_capability(actor, Capability.CREATE_RFP)   # raises PermissionDenied

    system = Actor.system("payment-webhook")
"""

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    DEPARTMENT_USER = "department_user"
    DEPARTMENT_HEAD = "department_head"
    SUPERADMIN = "superadmin"
    SYSTEM = "system"


class Department(str, Enum):
    SALES = "sales"
    ACCOUNTS = "accounts"
    PRODUCTION = "production"
    MARKETING = "marketing"
    OTHER = "other"


class Capability(str, Enum):
    CREATE_RFP = "create_rfp"
    APPROVE_RFP = "approve_rfp"
    SET_PRODUCT_PRICE = "set_product_price"
    PRICE_RFP = "price_rfp"
    GENERATE_QUOTATION = "generate_quotation"
    SUBMIT_TO_ACCOUNTS = "submit_to_accounts"
    DECIDE_ACCOUNTS = "decide_accounts"
    DECIDE_SENIOR = "decide_senior"
    SAVE_PRICING_DECISION = "save_pricing_decision"
    VIEW_ALL_RFPS = "view_all_rfps"


# Known department-type strings → functional department.
DEPARTMENT_TYPES = {
    "sales": Department.SALES,
    "office_sales": Department.SALES,
    "marketing_sales": Department.SALES,
    "telesales": Department.SALES,
    "accounts": Department.ACCOUNTS,
    "production": Department.PRODUCTION,
    "marketing": Department.MARKETING,
}

_SALES_USER = frozenset({
    Capability.CREATE_RFP,
    Capability.GENERATE_QUOTATION,
    Capability.SUBMIT_TO_ACCOUNTS,
    Capability.SAVE_PRICING_DECISION,
})
_SALES_HEAD = frozenset({
    Capability.APPROVE_RFP,
    Capability.SET_PRODUCT_PRICE,
    Capability.GENERATE_QUOTATION,
    Capability.SUBMIT_TO_ACCOUNTS,
})
_ACCOUNTS = frozenset({
    Capability.PRICE_RFP,
    Capability.DECIDE_ACCOUNTS,
})

# (department, role) → granted capabilities.  Anything missing grants nothing.
CAPABILITY_MATRIX: dict[tuple[Department | None, Role], frozenset[Capability]] = {
    (Department.SALES, Role.DEPARTMENT_USER): _SALES_USER,
    (Department.SALES, Role.DEPARTMENT_HEAD): _SALES_HEAD,
    (Department.ACCOUNTS, Role.DEPARTMENT_USER): _ACCOUNTS,
    (Department.ACCOUNTS, Role.DEPARTMENT_HEAD): _ACCOUNTS,
    (None, Role.SUPERADMIN): frozenset({
        Capability.DECIDE_SENIOR,
        Capability.VIEW_ALL_RFPS,
    }),
}


class PermissionDenied(Exception):
    """Raised when an actor lacks the capability a transition requires."""

    def __init__(self, actor_name: str, capability: "Capability", message: str | None = None):
        super().__init__(
            message or f"{actor_name} is not allowed to {capability.value.replace('_', ' ')}"
        )
        self.actor_name = actor_name
        self.capability = capability


def resolve_department(department_type: str | None) -> Department:
    """Map a department-type string to its functional department (closed table)."""
    if not department_type:
        return Department.OTHER
    return DEPARTMENT_TYPES.get(department_type.strip().lower(), Department.OTHER)


def capabilities_for(role: Role, department: Department) -> frozenset[Capability]:
    """Capabilities granted to a (role, department) pair."""
    if role is Role.SUPERADMIN:
        return CAPABILITY_MATRIX[(None, Role.SUPERADMIN)]
    return CAPABILITY_MATRIX.get((department, role), frozenset())


@dataclass(frozen=True)
class Actor:
    """
    The identity performing a transition.

    Human actors come from verified token claims; system actors are named
    processes (webhooks, scripts) and carry only capabilities granted to
    them explicitly.
    """

    user_id: str | None
    email: str | None
    role: Role
    department: Department = Department.OTHER
    department_type: str | None = None
    company_name: str | None = None
    capabilities: frozenset = field(default_factory=frozenset)
    system_name: str | None = None

    @classmethod
    def from_claims(cls, claims: dict) -> "Actor":
        """Build a human actor from decoded token claims.

        Raises ValueError for an unknown role.
        """
        role = Role(claims.get("role"))
        if role is Role.SYSTEM:
            raise ValueError("system actors cannot be issued through tokens")
        department_type = claims.get("department_type")
        department = resolve_department(department_type)
        user_id = claims.get("sub")
        return cls(
            user_id=str(user_id) if user_id is not None else None,
            email=claims.get("email"),
            role=role,
            department=department,
            department_type=department_type,
            company_name=claims.get("company_name"),
            capabilities=capabilities_for(role, department),
        )

    @classmethod
    def system(cls, name: str, capabilities=()) -> "Actor":
        """A named system-process identity."""
        return cls(
            user_id=None,
            email=None,
            role=Role.SYSTEM,
            capabilities=frozenset(capabilities),
            system_name=name,
        )

    @property
    def is_system(self) -> bool:
        return self.role is Role.SYSTEM

    @property
    def display_name(self) -> str:
        if self.is_system:
            return f"system:{self.system_name}"
        return self.email or str(self.user_id)

    @property
    def role_name(self) -> str:
        return self.role.value

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities


_DENIAL_MESSAGES = {
    Capability.CREATE_RFP: "Only salespersons can raise RFP",
    Capability.APPROVE_RFP: "Only Sales DH can approve or reject RFP",
    Capability.SET_PRODUCT_PRICE: "Only Sales DH can set product calculator prices",
    Capability.PRICE_RFP: "Only Accounts can update pricing",
    Capability.GENERATE_QUOTATION: "Only Sales can generate quotation",
    Capability.SUBMIT_TO_ACCOUNTS: "Only Sales can submit to accounts",
    Capability.DECIDE_ACCOUNTS: "Only Accounts can approve",
    Capability.DECIDE_SENIOR: "Only Senior Management can approve",
    Capability.SAVE_PRICING_DECISION: "Only salespersons can save pricing decisions",
}


def check_capability(actor: Actor, capability: Capability) -> None:
    """
    Assert the actor holds ``capability``; raise PermissionDenied if not.
    """
    if not actor.can(capability):
        raise PermissionDenied(actor.display_name, capability, _DENIAL_MESSAGES.get(capability))
