"""
Shared fixtures for the invoice reconciliation tests.
"""

from typing import Callable, Optional

import pytest

from invoice_recon.cache import CounterpartyTaxCache


BUYER = "上海甲乙贸易有限公司"
BUYER_TAX_ID = "91310000MA1FL8XQ30"
SELLER = "北京丙丁科技有限公司"
SELLER_TAX_ID = "91110108MA01ABCD2X"


def build_invoice_text(
    buyer: str = BUYER,
    buyer_tax_id: Optional[str] = BUYER_TAX_ID,
    seller: str = SELLER,
    seller_tax_id: Optional[str] = SELLER_TAX_ID,
    pre_tax: str = "100.00",
    tax: str = "6.00",
    total: str = "106.00",
    rate: str = "6%",
    words: str = "壹佰零陆圆整",
) -> str:
    """Text layer of a VAT invoice: buyer block on top, seller block at the bottom."""
    lines = [
        "增值税专用发票",
        "发票代码：011001900111 发票号码：12345678",
        "开票日期：2024年03月15日",
        f"购买方 名称：{buyer}",
    ]
    if buyer_tax_id:
        lines.append(f"纳税人识别号：{buyer_tax_id}")
    lines += [
        "地址、电话：上海市浦东新区 021-12345678",
        "密码区",
        "货物或应税劳务名称 规格型号 单位 数量 单价 金额 税率 税额",
        f"*信息技术服务*技术服务费 1 {pre_tax} {pre_tax} {rate} {tax}",
        f"合计 ¥{pre_tax} ¥{tax}",
        f"价税合计（大写） ⓧ{words} （小写） ¥{total}",
        f"销售方 名称：{seller}",
    ]
    if seller_tax_id:
        lines.append(f"纳税人识别号：{seller_tax_id}")
    lines.append("地址、电话：北京市海淀区 010-87654321")
    return "\n".join(lines)


@pytest.fixture
def invoice_text() -> Callable[..., str]:
    """Factory for invoice texts; keyword arguments override single fields."""
    return build_invoice_text


@pytest.fixture
def sample_text() -> str:
    """A complete, consistent invoice text."""
    return build_invoice_text()


@pytest.fixture
def cache() -> CounterpartyTaxCache:
    return CounterpartyTaxCache()
