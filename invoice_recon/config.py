"""
Configuration constants and enums for the invoice reconciliation engine.
"""

import logging
import os
from decimal import Decimal
from enum import Enum
from typing import Final, Optional

# ============================================================================
# Tax Rates
# ============================================================================

# Legally valid VAT rates (percent) accepted on a reconciled record
VALID_TAX_RATES: Final[tuple[int, ...]] = (0, 3, 6, 9, 13)

# Rate assumed when tax / pre-tax does not land near any valid rate
DEFAULT_TAX_RATE: Final[int] = 6

# Maximum distance (percentage points) for snapping a raw rate to a valid one
TAX_RATE_SNAP_TOLERANCE: Final[Decimal] = Decimal("1")

# ============================================================================
# Reconciliation Tolerances
# ============================================================================

# Allowed drift between pre_tax + tax and total (two cents)
AMOUNT_TOLERANCE: Final[Decimal] = Decimal(os.getenv("AMOUNT_TOLERANCE", "0.02"))

# Allowed drift between the numeric total and the amount written in words
WORDS_TOLERANCE: Final[Decimal] = Decimal(os.getenv("WORDS_TOLERANCE", "0.01"))

# ============================================================================
# Text Normalization
# ============================================================================

# Marker placed between texts coming from different acquisition methods
SOURCE_SEPARATOR: Final[str] = "--- source ---"

FULL_WIDTH_REPLACEMENTS: Final[dict[str, str]] = {
    "：": ":",
    "（": "(",
    "）": ")",
}

# ============================================================================
# Counterparty Extraction
# ============================================================================

NAME_MIN_LENGTH: Final[int] = 4
NAME_MAX_LENGTH: Final[int] = 100

# A counterparty name must contain one of these
ORGANIZATION_KEYWORDS: Final[list[str]] = [
    "公司",
    "集团",
    "事务所",
    "中心",
    "银行",
    "医院",
    "学校",
    "大学",
    "学院",
    "研究院",
    "研究所",
    "合作社",
    "工作室",
    "商行",
    "商店",
    "经营部",
    "门市部",
    "厂",
    # English
    "company",
    "co.",
    "ltd",
    "limited",
    "group",
    "inc",
    "corp",
    "firm",
    "llc",
]

# ...and none of these
DISQUALIFYING_TOKENS: Final[list[str]] = [
    "纳税人识别号",
    "识别号",
    "税号",
    "金额",
    "税额",
    "发票",
    "%",
    "¥",
    "￥",
    "$",
    # English
    "tax id",
    "amount",
    "invoice",
]

# Characters of window searched for a tax id after a buyer/seller anchor
TAX_ID_WINDOW: Final[int] = 100

TAX_ID_MIN_LENGTH: Final[int] = 15
TAX_ID_MAX_LENGTH: Final[int] = 20
TAX_ID_MIN_DIGITS: Final[int] = 10

# ============================================================================
# Amount In Words
# ============================================================================

NUMERAL_CHARACTERS: Final[str] = "零壹贰叁肆伍陆柒捌玖拾佰仟万亿元圆角分整正"

# ============================================================================
# Export
# ============================================================================

# Rendered in exported tables wherever a field could not be recognized
UNRECOGNIZED: Final[str] = os.getenv("UNRECOGNIZED_MARKER", "未识别")

CSV_HEADERS: Final[list[str]] = [
    "文件名",
    "发票代码",
    "发票号码",
    "开票日期",
    "购买方名称",
    "购买方纳税人识别号",
    "销售方名称",
    "销售方纳税人识别号",
    "价税合计(小写)",
    "价税合计(大写)",
    "税额",
    "金额",
    "税率",
]

# ============================================================================
# Batch Processing
# ============================================================================

MAX_WORKERS: Final[int] = int(os.getenv("MAX_WORKERS", "4"))

# Optional JSON file that persists the counterparty tax cache between runs
TAX_CACHE_PATH: Final[Optional[str]] = os.getenv("TAX_CACHE_PATH") or None

SUPPORTED_EXTENSIONS: Final[set[str]] = {".pdf", ".txt"}

# ============================================================================
# Record Note Categories
# ============================================================================

class NoteCategory(str, Enum):
    """Categories for notes attached to a record during reconciliation."""
    RECONCILED = "reconciled"
    BACKFILL = "backfill"
    ANOMALY = "anomaly"


# ============================================================================
# API Configuration
# ============================================================================

API_HOST: Final[str] = os.getenv("API_HOST", "0.0.0.0")
API_PORT: Final[int] = int(os.getenv("API_PORT", "8000"))
MAX_UPLOAD_SIZE_MB: Final[int] = int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))

# ============================================================================
# Logging Configuration
# ============================================================================

LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")

def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger("invoice_recon")


logger = setup_logging()
