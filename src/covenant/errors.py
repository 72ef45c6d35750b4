"""Error taxonomy for the bond lifecycle.

Every failure the engine can report has its own exception class with a
stable ``kind`` string. The service facade catches ``BondError``, rolls
the unit of work back, and reports ``kind`` in its ServiceResult so
callers can distinguish failures without parsing messages.

Subclassing ValueError keeps the convention used across the engine
modules: invalid requests are value errors.
"""

from __future__ import annotations


class BondError(ValueError):
    """Base class for every distinguishable lifecycle failure."""
    kind = "bond_error"


# ---------------------------------------------------------------------------
# Proposal failures
# ---------------------------------------------------------------------------

class InvalidTarget(BondError):
    kind = "invalid_target"


class SelfTarget(BondError):
    kind = "self_target"


class ProposalExists(BondError):
    kind = "proposal_exists"


class NoProposal(BondError):
    kind = "no_proposal"


class NotProposedToYou(BondError):
    kind = "not_proposed_to_you"


# ---------------------------------------------------------------------------
# Bond failures
# ---------------------------------------------------------------------------

class AlreadyBonded(BondError):
    kind = "already_bonded"


class NoActiveBond(BondError):
    kind = "no_active_bond"


class NotYourBond(BondError):
    kind = "not_your_bond"


class NothingToClaim(BondError):
    kind = "nothing_to_claim"


# ---------------------------------------------------------------------------
# Proof failures
# ---------------------------------------------------------------------------

class NullifierReused(BondError):
    kind = "nullifier_reused"


class VerificationFailed(BondError):
    kind = "verification_failed"


# ---------------------------------------------------------------------------
# Collaborator-side failures
# ---------------------------------------------------------------------------

class UnauthorizedCaller(BondError):
    kind = "unauthorized_caller"


class TransferForbidden(BondError):
    kind = "transfer_forbidden"


class ScheduleNotFound(BondError):
    kind = "schedule_not_found"


class ScheduleFrozen(BondError):
    kind = "schedule_frozen"
