from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from pto_balances.services.registry import BalanceServices, get_services

ServicesDep = Annotated[BalanceServices, Depends(get_services)]
