"""
Mock bank used to link the main booker's payout account.

Simulates Belgian banks: a network delay, and a small random share of
failed authentications. Delay and failure rate come from settings so tests
can make it deterministic.
"""
import asyncio
import logging
import random
import re
from typing import Dict, List, Optional

from partipay.core.config import settings
from partipay.core.exceptions import AuthFailedError, TransientUnavailableError
from partipay.models.session import LinkedAccount

logger = logging.getLogger(__name__)

BELGIAN_BANKS: Dict[str, dict] = {
    "kbc": {
        "name": "KBC Bank",
        "bic": "KREDBEBB",
        "accounts": [
            {"id": "kbc_1", "account_holder": "Jan Peeters", "iban": "BE68539007547034"},
            {"id": "kbc_2", "account_holder": "Jan Peeters", "iban": "BE42539007621845"},
        ],
    },
    "belfius": {
        "name": "Belfius Bank",
        "bic": "GKCCBEBB",
        "accounts": [
            {"id": "belfius_1", "account_holder": "Jan Peeters", "iban": "BE75068901234567"},
        ],
    },
    "bnpparibas": {
        "name": "BNP Paribas Fortis",
        "bic": "GEBABEBB",
        "accounts": [
            {"id": "bnp_1", "account_holder": "Jan Peeters", "iban": "BE92001012345678"},
        ],
    },
    "ing": {
        "name": "ING België",
        "bic": "BBRUBEBB",
        "accounts": [
            {"id": "ing_1", "account_holder": "Jan Peeters", "iban": "BE54310123456789"},
        ],
    },
    "argenta": {
        "name": "Argenta Bank",
        "bic": "ARSPBE22",
        "accounts": [
            {"id": "argenta_1", "account_holder": "Jan Peeters", "iban": "BE95979012345678"},
        ],
    },
}

_BELGIAN_IBAN = re.compile(r"^BE\d{14}$")


def clean_iban(iban: str) -> str:
    return re.sub(r"\s", "", iban).upper()


def validate_iban(iban: str) -> bool:
    """Basic Belgian IBAN format check."""
    return bool(_BELGIAN_IBAN.match(clean_iban(iban)))


def format_iban(iban: str) -> str:
    """Group an IBAN in blocks of four for display."""
    cleaned = clean_iban(iban)
    return " ".join(cleaned[i:i + 4] for i in range(0, len(cleaned), 4))


class BankService:
    def __init__(
        self,
        delay_seconds: Optional[float] = None,
        failure_rate: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        rng: Optional[random.Random] = None
    ):
        self.delay_seconds = settings.BANK_AUTH_DELAY_SECONDS if delay_seconds is None else delay_seconds
        self.failure_rate = settings.BANK_AUTH_FAILURE_RATE if failure_rate is None else failure_rate
        self.timeout_seconds = settings.BANK_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        self.rng = rng or random.Random()

    @staticmethod
    def list_banks() -> List[dict]:
        return [
            {"id": bank_id, "name": bank["name"], "bic": bank["bic"]}
            for bank_id, bank in BELGIAN_BANKS.items()
        ]

    @staticmethod
    def list_accounts(bank_id: str) -> List[dict]:
        bank = BELGIAN_BANKS.get(bank_id)
        if not bank:
            return []
        return [
            {
                "id": account["id"],
                "account_holder": account["account_holder"],
                "iban": format_iban(account["iban"]),
                "bank_name": bank["name"],
            }
            for account in bank["accounts"]
        ]

    async def _authenticate(self, bank_id: str, account_id: str) -> LinkedAccount:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

        bank = BELGIAN_BANKS.get(bank_id)
        if not bank:
            raise AuthFailedError("unknown_bank")

        account = next((a for a in bank["accounts"] if a["id"] == account_id), None)
        if account is None:
            raise AuthFailedError("account_not_found")

        if self.rng.random() < self.failure_rate:
            raise AuthFailedError("authentication_failed")

        return LinkedAccount(
            iban=account["iban"],
            account_holder=account["account_holder"],
            bank_name=bank["name"]
        )

    async def authenticate(self, bank_id: str, account_id: str) -> LinkedAccount:
        """Authenticate against the mock bank and return the payout account."""
        try:
            account = await asyncio.wait_for(
                self._authenticate(bank_id, account_id),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning("Bank authentication timed out for bank %s", bank_id)
            raise TransientUnavailableError("Bank did not respond in time")
        except AuthFailedError as e:
            logger.info("Bank authentication failed for bank %s: %s", bank_id, e.message)
            raise

        logger.info("Bank account linked at %s (%s****)", account.bank_name, account.iban[:4])
        return account
