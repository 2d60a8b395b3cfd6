"""Static currency reference table and display formatting."""

from decimal import Decimal
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from .exceptions import UnsupportedCurrency

if TYPE_CHECKING:
    from .money import Money


class CurrencyInfo(BaseModel):
    """Reference data for one ISO 4217 currency."""

    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    symbol: str
    precision: int  # number of minor-unit decimal places


# (code, name, symbol, precision)
_TABLE: tuple[tuple[str, str, str, int], ...] = (
    # Major currencies
    ("USD", "US Dollar", "$", 2),
    ("EUR", "Euro", "€", 2),
    ("GBP", "British Pound", "£", 2),
    ("JPY", "Japanese Yen", "¥", 0),
    ("CAD", "Canadian Dollar", "C$", 2),
    ("AUD", "Australian Dollar", "A$", 2),
    ("CHF", "Swiss Franc", "CHF", 2),
    ("CNY", "Chinese Yuan", "¥", 2),
    ("INR", "Indian Rupee", "₹", 2),
    ("BRL", "Brazilian Real", "R$", 2),
    ("MXN", "Mexican Peso", "$", 2),
    ("KRW", "South Korean Won", "₩", 0),
    ("SGD", "Singapore Dollar", "S$", 2),
    ("HKD", "Hong Kong Dollar", "HK$", 2),
    ("NZD", "New Zealand Dollar", "NZ$", 2),
    ("SEK", "Swedish Krona", "kr", 2),
    ("NOK", "Norwegian Krone", "kr", 2),
    ("DKK", "Danish Krone", "kr", 2),
    ("PLN", "Polish Zloty", "zł", 2),
    ("CZK", "Czech Koruna", "Kč", 2),
    ("HUF", "Hungarian Forint", "Ft", 0),
    # Additional currencies
    ("RUB", "Russian Ruble", "₽", 2),
    ("TRY", "Turkish Lira", "₺", 2),
    ("ZAR", "South African Rand", "R", 2),
    ("THB", "Thai Baht", "฿", 2),
    ("MYR", "Malaysian Ringgit", "RM", 2),
    ("IDR", "Indonesian Rupiah", "Rp", 0),
    ("PHP", "Philippine Peso", "₱", 2),
    ("VND", "Vietnamese Dong", "₫", 0),
    ("EGP", "Egyptian Pound", "E£", 2),
    ("NGN", "Nigerian Naira", "₦", 2),
    ("KES", "Kenyan Shilling", "KSh", 2),
    ("GHS", "Ghanaian Cedi", "GH₵", 2),
    ("UGX", "Ugandan Shilling", "USh", 0),
    ("TZS", "Tanzanian Shilling", "TSh", 0),
    ("ZMW", "Zambian Kwacha", "ZK", 2),
    ("BWP", "Botswana Pula", "P", 2),
    ("NAD", "Namibian Dollar", "N$", 2),
    ("MUR", "Mauritian Rupee", "₨", 2),
    ("BDT", "Bangladeshi Taka", "৳", 2),
    ("LKR", "Sri Lankan Rupee", "₨", 2),
    ("NPR", "Nepalese Rupee", "₨", 2),
    ("PKR", "Pakistani Rupee", "₨", 2),
    ("AFN", "Afghan Afghani", "؋", 2),
    ("IRR", "Iranian Rial", "﷼", 0),
    ("IQD", "Iraqi Dinar", "ع.د", 3),
    ("SAR", "Saudi Riyal", "﷼", 2),
    ("AED", "UAE Dirham", "د.إ", 2),
    ("QAR", "Qatari Riyal", "﷼", 2),
    ("KWD", "Kuwaiti Dinar", "د.ك", 3),
    ("BHD", "Bahraini Dinar", ".د.ب", 3),
    ("OMR", "Omani Rial", "ر.ع.", 3),
    ("JOD", "Jordanian Dinar", "د.ا", 3),
    ("LBP", "Lebanese Pound", "ل.ل", 0),
    ("ILS", "Israeli Shekel", "₪", 2),
    ("PEN", "Peruvian Sol", "S/", 2),
    ("CLP", "Chilean Peso", "$", 0),
    ("COP", "Colombian Peso", "$", 0),
    ("ARS", "Argentine Peso", "$", 2),
    ("UYU", "Uruguayan Peso", "$", 2),
    ("PYG", "Paraguayan Guaraní", "₲", 0),
    ("BOB", "Bolivian Boliviano", "Bs.", 2),
    ("GTQ", "Guatemalan Quetzal", "Q", 2),
    ("HNL", "Honduran Lempira", "L", 2),
    ("NIO", "Nicaraguan Córdoba", "C$", 2),
    ("CRC", "Costa Rican Colón", "₡", 0),
    ("PAB", "Panamanian Balboa", "B/.", 2),
    ("DOP", "Dominican Peso", "RD$", 2),
    ("JMD", "Jamaican Dollar", "J$", 2),
    ("TTD", "Trinidad and Tobago Dollar", "TT$", 2),
    ("BBD", "Barbadian Dollar", "Bds$", 2),
    ("XCD", "East Caribbean Dollar", "EC$", 2),
    ("BZD", "Belize Dollar", "BZ$", 2),
    ("GYD", "Guyanese Dollar", "G$", 2),
    ("SRD", "Surinamese Dollar", "$", 2),
    ("BMD", "Bermudian Dollar", "BD$", 2),
    ("KYD", "Cayman Islands Dollar", "CI$", 2),
    ("FJD", "Fijian Dollar", "FJ$", 2),
    ("WST", "Samoan Tālā", "T", 2),
    ("TOP", "Tongan Paʻanga", "T$", 2),
    ("VUV", "Vanuatu Vatu", "VT", 0),
    ("SBD", "Solomon Islands Dollar", "SI$", 2),
    ("PGK", "Papua New Guinean Kina", "K", 2),
    ("KMF", "Comorian Franc", "CF", 0),
    ("DJF", "Djiboutian Franc", "Fdj", 0),
    ("CDF", "Congolese Franc", "FC", 2),
    ("RWF", "Rwandan Franc", "FRw", 0),
    ("BIF", "Burundian Franc", "FBu", 0),
    ("XAF", "Central African CFA Franc", "FCFA", 0),
    ("XOF", "West African CFA Franc", "CFA", 0),
    ("XPF", "CFP Franc", "₣", 0),
    ("GMD", "Gambian Dalasi", "D", 2),
    ("SLL", "Sierra Leonean Leone", "Le", 2),
    ("LRD", "Liberian Dollar", "L$", 2),
    ("GNF", "Guinean Franc", "FG", 0),
    ("SOS", "Somali Shilling", "Sh.So.", 2),
    ("ETB", "Ethiopian Birr", "Br", 2),
    ("SDG", "Sudanese Pound", "ج.س.", 2),
    ("SSP", "South Sudanese Pound", "SSP", 2),
    ("LYD", "Libyan Dinar", "ل.د", 3),
    ("TND", "Tunisian Dinar", "د.ت", 3),
    ("DZD", "Algerian Dinar", "د.ج", 2),
    ("MAD", "Moroccan Dirham", "د.م.", 2),
    ("MRO", "Mauritanian Ouguiya", "UM", 2),
)

CURRENCIES: dict[str, CurrencyInfo] = {
    code: CurrencyInfo(code=code, name=name, symbol=symbol, precision=precision)
    for code, name, symbol, precision in _TABLE
}


def is_supported(code: str) -> bool:
    """Check whether a currency code is in the reference table."""
    return code.upper() in CURRENCIES


def get_currency_info(code: str) -> CurrencyInfo:
    """
    Look up reference data for a currency.

    Args:
        code: ISO 4217 code, case-insensitive

    Returns:
        The currency's reference entry

    Raises:
        UnsupportedCurrency: If the code is not in the table
    """
    info = CURRENCIES.get(code.upper())
    if info is None:
        raise UnsupportedCurrency(code)
    return info


def supported_currencies() -> list[CurrencyInfo]:
    """All currencies in the reference table, sorted by code."""
    return sorted(CURRENCIES.values(), key=lambda c: c.code)


def format_amount(money: "Money") -> str:
    """
    Format an amount with its currency symbol at the currency's precision.

    Examples:
        Money(minor_units=1234, currency="USD") -> "$12.34"
        Money(minor_units=-500, currency="EUR") -> "-€5.00"
        Money(minor_units=1200, currency="JPY") -> "¥1200"
    """
    info = get_currency_info(money.currency)
    major = Decimal(abs(money.minor_units)).scaleb(-info.precision)
    sign = "-" if money.minor_units < 0 else ""
    return f"{sign}{info.symbol}{major:.{info.precision}f}"
