from tradeleague.core.database import Base

# Import all models here to ensure they are registered with Base
from .user import User
from .tournament import Tournament
from .participant import Participant
from .purchase import Purchase
from .trade import Trade
from .ledger_entry import LedgerEntry
from .prize_distribution import PrizeDistribution
from .achievement import Achievement

# Tables are created by tradeleague.main on startup (Base.metadata.create_all),
# and by the test fixtures against their own engine.
