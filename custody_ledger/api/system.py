"""
Custody system wiring and the FastAPI dependency that hands it out
"""

from typing import Optional

from ..config import CustodyConfig, get_config
from ..events import EventDispatcher
from ..host import ValueHost
from ..ledger import Ledger
from ..storage import InMemoryStorage, create_storage
from ..units import whole_units


class CustodySystem:
    """Storage, host and ledger wired together from configuration"""

    def __init__(self, config: Optional[CustodyConfig] = None, use_memory: bool = False):
        config = config or get_config()
        if use_memory:
            self.storage = InMemoryStorage()
        else:
            self.storage = create_storage(config.database_url)

        self.event_dispatcher = EventDispatcher()
        self.host = ValueHost(self.storage)

        initial_value = whole_units(config.initial_value)
        if initial_value and config.deployer:
            # Deployment value is minted once, on first start
            if self.storage.load(Ledger.STATE_TABLE, config.ledger_address) is None:
                self.host.mint(config.deployer, initial_value)

        self.ledger = Ledger(
            self.storage,
            self.host,
            bank_cap=whole_units(config.bank_cap),
            address=config.ledger_address,
            initial_value=initial_value,
            deployer=config.deployer,
            event_dispatcher=self.event_dispatcher
        )

    def close(self) -> None:
        self.storage.close()


_system: Optional[CustodySystem] = None


def get_custody_system() -> CustodySystem:
    """Dependency returning the process-wide custody system"""
    global _system
    if _system is None:
        _system = CustodySystem()
    return _system


def set_custody_system(system: Optional[CustodySystem]) -> None:
    """Replace the process-wide custody system (tests, embedding)"""
    global _system
    _system = system
