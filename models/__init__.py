from sqlalchemy.orm import declarative_base

Base = declarative_base()

# --------------------------------------------------
# Owners & merchants (directory esterna, sola lettura)
# --------------------------------------------------
from .users import User  # noqa: F401
from .merchants import Merchant  # noqa: F401

# --------------------------------------------------
# Orders (sottosistema ordini, sola lettura)
# --------------------------------------------------
from .orders import Order, OrderItem  # noqa: F401

# --------------------------------------------------
# Payout ledger
# --------------------------------------------------
from .payouts import Payout  # noqa: F401
