"""
Static catalog backend — an in-repo keyword → product table.

Stands in for a real catalog API. Matching, in order:
  1. category match   — a table key appears in the keywords (or vice versa),
                        or any keyword token matches a product tag
  2. substring match  — a keyword token appears in a product's name/category/tags
  3. popular defaults — a fixed list of best-sellers

so a search never comes back empty.
"""
from __future__ import annotations

import logging

import config
from catalog_backends.base import CatalogBackend, with_associate_tag
from models import Product

logger = logging.getLogger(__name__)

_DP = "https://amazon.co.jp/dp/"
_IMG = "https://images-na.ssl-images-amazon.com/images/I/"

# category keyword → [(id, name, price, category, tags, reason, image)]
_TABLE: dict[str, list[tuple[str, str, str, str, tuple[str, ...], str, str]]] = {
    "ペット": [
        ("B08XYZPET1", "ペット用自動給餌器 スマホ連動 タイマー付き", "¥6,980", "ペット用品",
         ("ペット", "犬", "猫", "自動給餌", "スマート"),
         "お留守番時も安心の自動給餌器。スマホで遠隔操作可能", "61abc123def.jpg"),
        ("B09ABCPET2", "ペット用体重計 デジタル表示 健康管理", "¥2,480", "ペット用品",
         ("ペット", "犬", "猫", "健康管理", "デジタル"),
         "愛犬・愛猫の健康管理に便利な高精度体重計", "71def456ghi.jpg"),
        ("B07DEFPET3", "ペット用知育おもちゃ ストレス解消", "¥1,280", "ペット用品",
         ("ペット", "犬", "猫", "おもちゃ", "知育"),
         "運動不足解消とストレス発散に最適な知育玩具", "81ghi789jkl.jpg"),
    ],
    "アウトドア": [
        ("B06GHIOUT1", "ポータブルチェア 軽量 折りたたみ キャンプ", "¥3,980", "アウトドア用品",
         ("アウトドア", "キャンプ", "軽量", "公園"),
         "持ち運び便利な超軽量折りたたみチェア", "61mno123pqr.jpg"),
        ("B05JKLOUT2", "ポータブル電源 大容量 キャンプ 防災", "¥29,800", "アウトドア用品",
         ("アウトドア", "電源", "防災", "キャンプ"),
         "キャンプや緊急時に頼れる大容量ポータブル電源", "71stu456vwx.jpg"),
        ("B04MNOOUT3", "テント 2〜3人用 防水 簡単設営", "¥12,800", "アウトドア用品",
         ("アウトドア", "テント", "防水", "キャンプ"),
         "初心者でも簡単に設営できる高性能テント", "81yz012abc.jpg"),
    ],
    "ガジェット": [
        ("B03PQRGAD1", "モバイルバッテリー 大容量 20000mAh", "¥2,980", "電子機器",
         ("ガジェット", "バッテリー", "大容量", "スマホ"),
         "外出時の必需品。2台同時充電可能な大容量モデル", "61def789ghi.jpg"),
        ("B02STUGAD2", "ワイヤレスイヤホン Bluetooth5.0", "¥4,980", "電子機器",
         ("ガジェット", "イヤホン", "ワイヤレス", "音楽"),
         "高音質と長時間再生を実現したワイヤレスイヤホン", "71jkl456mno.jpg"),
    ],
    "料理": [
        ("B01VWXCOO1", "電気圧力鍋 2.2L 一人暮らし向け", "¥9,800", "キッチン用品",
         ("料理", "圧力鍋", "電気", "キッチン"),
         "時短料理の強い味方。ボタン一つで本格料理", "81pqr123stu.jpg"),
        ("B09YZACOO2", "包丁セット ステンレス製 プロ仕様", "¥7,980", "キッチン用品",
         ("料理", "包丁", "ステンレス", "キッチン"),
         "切れ味抜群のプロ仕様包丁セット", "71vwx789yza.jpg"),
    ],
    "美容": [
        ("B08BCDBEA1", "ヘアドライヤー イオン機能付き", "¥8,980", "美容・健康",
         ("美容", "ドライヤー", "イオン", "ヘアケア"),
         "サロン級の仕上がり。マイナスイオンで髪に優しい", "61bcd345efg.jpg"),
    ],
    "掃除": [
        ("B07EFGCLE1", "ロボット掃除機 自動充電 スマート", "¥19,800", "家電",
         ("掃除", "ロボット", "スマート", "家電"),
         "忙しい毎日の掃除を自動化。スマホで操作可能", "71hij678klm.jpg"),
    ],
}

_POPULAR: list[tuple[str, str, str, str, tuple[str, ...], str, str]] = [
    ("B01GENERAL", "モバイルバッテリー 大容量 20000mAh", "¥2,980", "電子機器",
     ("ガジェット", "便利グッズ"),
     "外出時の必需品。多くの人に愛用されています", "61general.jpg"),
    ("B02POPULAR", "ワイヤレス充電器 置くだけ充電", "¥1,980", "電子機器",
     ("ガジェット", "ワイヤレス"),
     "ケーブル不要の便利な充電器", "71popular.jpg"),
]


def _to_product(row: tuple[str, str, str, str, tuple[str, ...], str, str]) -> Product:
    asin, name, price, category, tags, reason, image = row
    return Product(
        id=asin,
        name=name,
        price=price,
        affiliate_url=with_associate_tag(f"{_DP}{asin}", config.AMAZON_ASSOCIATE_TAG),
        category=category,
        tags=list(tags),
        image_url=f"{_IMG}{image}",
        reason=reason,
    )


class StaticCatalogBackend(CatalogBackend):

    @property
    def name(self) -> str:
        return "Static catalog"

    async def search(self, keywords: str, max_results: int = 5) -> list[Product]:
        rows = _match(keywords)
        return [_to_product(row) for row in rows[:max_results]]


def _match(keywords: str) -> list[tuple]:
    query = keywords.strip().lower()
    tokens = [t for t in query.split() if t]
    if not tokens:
        return list(_POPULAR)

    # 1. Category match
    for category, rows in _TABLE.items():
        key = category.lower()
        if key in query or any(t in key for t in tokens):
            return list(rows)
        if any(tag.lower() == t for row in rows for tag in row[4] for t in tokens):
            return list(rows)

    # 2. Substring match on name / category / tags
    for rows in _TABLE.values():
        matched = [
            row for row in rows
            if any(
                t in row[1].lower() or t in row[3].lower()
                or any(t in tag.lower() for tag in row[4])
                for t in tokens
            )
        ]
        if matched:
            return matched

    # 3. Popular defaults
    logger.info("Static catalog: no match for '%s' — returning popular defaults", keywords)
    return list(_POPULAR)
