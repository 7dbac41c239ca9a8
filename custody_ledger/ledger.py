"""
Custody Ledger Engine

Holds each depositor's balance of the native value unit, accepts deposits
under a global cap and pays out withdrawals up to a fixed per-operation
ceiling.

Every public operation is one atomic invocation: it either applies all of
its effects or none. Withdrawals update the balance and counter before the
value is sent, so a receiver that calls back into the ledger during the
send always sees the already-reduced balance.
"""

from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from .audit import AuditTrail, AuditEvent, AuditEventType
from .errors import (
    LedgerError, InvalidDepositAmount, DepositCapReached, InvalidWithdrawAmount,
    WithdrawLimitExceeded, InsufficientBalance, TransferFailed,
)
from .events import EventDispatcher, create_record_event
from .host import ValueHost
from .storage import StorageInterface
from .units import BASE_UNITS_PER_WHOLE, format_units, require_unsigned
from .logging_config import get_logger, log_action

# Largest amount a single withdrawal may request
MAX_WITHDRAW_PER_TX = 50 * BASE_UNITS_PER_WHOLE


class Ledger:
    """
    Custodial ledger for one native value unit

    Balances and counters are kept in storage next to the host's native
    balances, so a single atomic frame covers the ledger's bookkeeping and
    the value it moves.
    """

    STATE_TABLE = "ledger_state"
    BALANCE_TABLE = "ledger_balances"

    def __init__(
        self,
        storage: StorageInterface,
        host: ValueHost,
        bank_cap: int,
        address: str = "custody-ledger",
        initial_value: int = 0,
        deployer: Optional[str] = None,
        event_dispatcher: Optional[EventDispatcher] = None
    ):
        """
        Open the ledger at ``address``, creating its state on first use

        Args:
            storage: Storage shared with the host
            host: Execution environment holding native value
            bank_cap: Ceiling on value held, in base units
            address: Identity of the ledger itself in the host
            initial_value: Value moved from ``deployer`` into custody at
                creation; not credited to any account
            deployer: Identity funding ``initial_value``
            event_dispatcher: Receives deposit/withdrawal events after commit

        Reopening a ledger that already exists in storage keeps its state;
        ``initial_value`` is only moved on creation.

        Raises:
            ValueError: If arguments are invalid, or the stored ledger at
                ``address`` was created with a different cap
        """
        require_unsigned(bank_cap, "bank_cap")
        require_unsigned(initial_value, "initial_value")
        if initial_value and not deployer:
            raise ValueError("initial_value requires a deployer to fund it")

        self.storage = storage
        self.host = host
        self.address = address
        self.event_dispatcher = event_dispatcher
        self.audit_trail = AuditTrail(storage, address)
        self.logger = get_logger("custody.ledger")

        state = self._load_state()
        if state is not None:
            if int(state['bank_cap']) != bank_cap:
                raise ValueError(
                    f"Ledger {address} already exists with cap {state['bank_cap']}, not {bank_cap}"
                )
            self._bank_cap = bank_cap
            return

        self._bank_cap = bank_cap
        with self.storage.atomic():
            self._save_state({
                'address': address,
                'bank_cap': str(bank_cap),
                'total_deposits': 0,
                'total_withdrawals': 0
            })
            if initial_value:
                self.host.move(deployer, address, initial_value)
            self.audit_trail.log_event(
                AuditEventType.LEDGER_OPENED,
                identity=deployer or address,
                amount=initial_value,
                metadata={'bank_cap': str(bank_cap)}
            )

        log_action(
            self.logger, "info", f"Ledger {address} opened with cap {format_units(bank_cap)}",
            user_id=deployer, action="open_ledger", resource=f"ledger:{address}",
            extra={"bank_cap": str(bank_cap), "initial_value": str(initial_value)}
        )

    # Read-only views

    @property
    def bank_cap(self) -> int:
        return self._bank_cap

    @property
    def withdraw_limit(self) -> int:
        return MAX_WITHDRAW_PER_TX

    @property
    def total_deposits(self) -> int:
        return self._load_state()['total_deposits']

    @property
    def total_withdrawals(self) -> int:
        return self._load_state()['total_withdrawals']

    @property
    def total_held_value(self) -> int:
        """Native value the host holds for the ledger"""
        return self.host.balance_of(self.address)

    def balance_of(self, identity: str) -> int:
        """Balance owed to an identity; 0 if it never deposited"""
        record = self.storage.load(self.BALANCE_TABLE, self._balance_key(identity))
        if record:
            return int(record['balance'])
        return 0

    def summary(self) -> Dict[str, Any]:
        """Snapshot of the global ledger state"""
        return {
            'address': self.address,
            'bank_cap': self.bank_cap,
            'withdraw_limit': self.withdraw_limit,
            'total_deposits': self.total_deposits,
            'total_withdrawals': self.total_withdrawals,
            'total_held_value': self.total_held_value,
            'record_count': self.audit_trail.last_sequence()
        }

    def records(self, limit: Optional[int] = None) -> List[AuditEvent]:
        """Emitted records, oldest first"""
        return self.audit_trail.get_all_events(limit=limit)

    # Operations

    def deposit(self, caller: str, amount: int) -> None:
        """
        Credit the value attached to the call to the caller's balance

        The attached value enters the ledger's custody before any check
        runs, and the cap is compared against the resulting holdings: the
        deposit is rejected only if holdings end up strictly above the cap.

        Raises:
            InvalidDepositAmount: If no value is attached
            DepositCapReached: If holdings exceed the cap after crediting
            InsufficientNativeFunds: If the caller cannot fund the value
        """
        require_unsigned(amount)
        with self._invocation("deposit", caller, amount):
            self.host.move(caller, self.address, amount)

            if amount == 0:
                raise InvalidDepositAmount("Deposit must carry value", caller, amount)

            held = self.total_held_value
            if held > self.bank_cap:
                raise DepositCapReached(
                    f"Holdings {format_units(held)} exceed cap {format_units(self.bank_cap)}",
                    caller, amount
                )

            self._set_balance(caller, self.balance_of(caller) + amount)
            self._increment('total_deposits')
            self._emit(self.audit_trail.log_event(AuditEventType.DEPOSIT, caller, amount))

    def withdraw(self, caller: str, amount: int) -> None:
        """
        Pay ``amount`` of the caller's balance back to the caller

        Raises:
            InvalidWithdrawAmount: If amount is zero
            WithdrawLimitExceeded: If amount is above MAX_WITHDRAW_PER_TX
            InsufficientBalance: If the caller's balance is below amount
            TransferFailed: If sending the value to the caller fails
        """
        require_unsigned(amount)
        with self._invocation("withdraw", caller, amount):
            if amount == 0:
                raise InvalidWithdrawAmount("Withdrawal amount must be positive", caller, amount)

            if amount > MAX_WITHDRAW_PER_TX:
                raise WithdrawLimitExceeded(
                    f"{format_units(amount)} is above the per-withdrawal limit of "
                    f"{format_units(MAX_WITHDRAW_PER_TX)}",
                    caller, amount
                )

            balance = self.balance_of(caller)
            if balance < amount:
                raise InsufficientBalance(
                    f"Balance {format_units(balance)} is below {format_units(amount)}",
                    caller, amount
                )

            # State is final before the value leaves; the send may reenter
            self._set_balance(caller, balance - amount)
            self._increment('total_withdrawals')

            if not self.host.send(self.address, caller, amount):
                raise TransferFailed(f"Sending {format_units(amount)} to {caller} failed", caller, amount)

            self._emit(self.audit_trail.log_event(AuditEventType.WITHDRAWAL, caller, amount))

    # Internals

    @contextmanager
    def _invocation(self, operation: str, caller: str, amount: int):
        """
        Run one ledger invocation in its own atomic frame

        Nested (reentrant) invocations, on this ledger or any other sharing
        the storage, get nested frames.
        """
        depth = self.storage.transaction_depth + 1
        try:
            with self.storage.atomic():
                depth = self.storage.transaction_depth
                yield
        except LedgerError as e:
            log_action(
                self.logger, "warning", f"{operation} rejected: {e.message}",
                user_id=caller, action=operation, resource=f"ledger:{self.address}",
                extra={"error": e.kind.value, "amount": str(amount), "depth": depth}
            )
            raise

        log_action(
            self.logger, "info", f"{operation} of {format_units(amount)} by {caller}",
            user_id=caller, action=operation, resource=f"ledger:{self.address}",
            extra={"amount": str(amount), "depth": depth}
        )

    def _emit(self, record: AuditEvent) -> None:
        """Publish a record once the outermost frame holding it commits"""
        if self.event_dispatcher is None:
            return
        event = create_record_event(record)
        if event is not None:
            self.storage.on_commit(lambda: self.event_dispatcher.publish(event))

    def _balance_key(self, identity: str) -> str:
        return f"{self.address}:{identity}"

    def _set_balance(self, identity: str, balance: int) -> None:
        self.storage.save(self.BALANCE_TABLE, self._balance_key(identity), {
            'ledger': self.address,
            'identity': identity,
            'balance': str(balance)
        })

    def _load_state(self) -> Optional[Dict[str, Any]]:
        return self.storage.load(self.STATE_TABLE, self.address)

    def _save_state(self, state: Dict[str, Any]) -> None:
        self.storage.save(self.STATE_TABLE, self.address, state)

    def _increment(self, counter: str) -> None:
        state = self._load_state()
        state[counter] += 1
        self._save_state(state)
