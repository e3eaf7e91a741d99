"""Nigerian bank name → Flutterwave bank code lookup and transfer gating"""

import logging
from typing import Iterable, Optional

from ..config import ALLOWED_BANK_CODES
from ..errors import InvalidBankCode, UnsupportedBankCode
from ..shared.validators import is_numeric_code

logger = logging.getLogger(__name__)

BANK_CODES = {
    "Access Bank": "044",
    "Access Bank (Diamond)": "063",
    "Citibank Nigeria": "023",
    "Ecobank Nigeria": "050",
    "Fidelity Bank": "070",
    "First Bank of Nigeria": "011",
    "First City Monument Bank": "214",
    "FCMB": "214",
    "Guaranty Trust Bank": "058",
    "GTBank": "058",
    "Heritage Bank": "030",
    "Keystone Bank": "082",
    "Polaris Bank": "076",
    "Providus Bank": "101",
    "Stanbic IBTC Bank": "221",
    "Standard Chartered Bank": "068",
    "Sterling Bank": "232",
    "SunTrust Bank": "100",
    "Union Bank of Nigeria": "032",
    "United Bank For Africa": "033",
    "UBA": "033",
    "Unity Bank": "215",
    "Wema Bank": "035",
    "Zenith Bank": "057",
    "Kuda Bank": "50211",
    "Rubies Bank": "125",
    "VFD Microfinance Bank": "566",
    "Moniepoint": "50515",
    "Opay": "999992",
    "PalmPay": "999991",
    "Sparkle Microfinance Bank": "51310",
    "Rephidim Microfinance Bank": "50767",
    "NPF Microfinance Bank": "50629",
}


def get_bank_code(bank_name: Optional[str]) -> Optional[str]:
    """Exact match first, then case-insensitive"""
    if not bank_name:
        return None
    if bank_name in BANK_CODES:
        return BANK_CODES[bank_name]

    normalized = bank_name.strip().lower()
    for name, code in BANK_CODES.items():
        if name.lower() == normalized:
            return code

    logger.warning(f"Bank code not found for: {bank_name}")
    return None


def ensure_transfer_allowed(bank_code: Optional[str], allowed_codes: Optional[Iterable[str]] = None) -> str:
    """
    Gate a bank code before any gateway call is made.

    Raises:
        InvalidBankCode: code is missing or not purely numeric
        UnsupportedBankCode: code is not enabled in this environment
    """
    if not is_numeric_code(bank_code):
        raise InvalidBankCode("Invalid bank code supplied", bank_code=bank_code)

    allowed = list(ALLOWED_BANK_CODES if allowed_codes is None else allowed_codes)
    if bank_code not in allowed:
        raise UnsupportedBankCode(
            f'Bank code "{bank_code}" is not allowed in this environment. '
            f"Allowed codes: {', '.join(allowed)}.",
            bank_code=bank_code,
        )
    return bank_code
