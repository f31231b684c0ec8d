"""
ledger_kernel.services.ledger_services -- wiring for the kernel services.

Responsibility:
    Creates every kernel service exactly once for a session and wires them
    together, so a posting context shares one PeriodService, one
    AccountService and one JournalWriter.

Architecture position:
    Kernel > Services -- the single place where services are constructed
    and composed.  Settings and the chart template are injected; nothing
    here reads files.

Usage:
    config = get_ledger_config()
    with db.session_scope() as session:
        ledger = LedgerServices.from_config(session, config)
        ledger.journal_writer.create_entry(...)
        ledger.ledger_selector.trial_balance(tenant_id)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from ledger_config.schema import ChartTemplate, LedgerSettings
from ledger_kernel.domain.authority import RolePolicy, role_policy
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.journal_writer import JournalWriter
from ledger_kernel.services.opening_balance_service import OpeningBalanceService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.reversal_service import ReversalService

if TYPE_CHECKING:
    from ledger_config import LedgerConfig


class LedgerServices:
    """
    Holds the wired service graph for one session.

    Capability checks default to the roles named in settings
    (``override_roles`` and ``lock_roles``); pass explicit policies to
    replace them.
    """

    def __init__(
        self,
        session: Session,
        settings: LedgerSettings | None = None,
        chart: ChartTemplate | None = None,
        clock: Clock | None = None,
        can_override_lock: RolePolicy | None = None,
        can_lock_period: RolePolicy | None = None,
    ):
        self.session = session
        self.settings = settings or LedgerSettings()
        self.clock = clock or SystemClock()

        self.period_service = PeriodService(
            session,
            self.clock,
            can_override_lock=can_override_lock
            or role_policy(self.settings.override_roles),
            can_lock_period=can_lock_period or role_policy(self.settings.lock_roles),
        )
        self.account_service = AccountService(session, self.clock, chart=chart)
        self.journal_writer = JournalWriter(
            session,
            self.period_service,
            self.account_service,
            self.clock,
            self.settings,
        )
        self.reversal_service = ReversalService(
            session, self.journal_writer, self.clock
        )
        self.opening_balance_service = OpeningBalanceService(
            session, self.journal_writer, self.clock, self.settings
        )

        self.account_selector = AccountSelector(session)
        self.ledger_selector = LedgerSelector(
            session, tolerance=self.settings.balance_tolerance
        )

    @classmethod
    def from_config(
        cls,
        session: Session,
        config: LedgerConfig,
        clock: Clock | None = None,
    ) -> LedgerServices:
        """Wire services from a loaded LedgerConfig."""
        return cls(session, settings=config.settings, chart=config.chart, clock=clock)
