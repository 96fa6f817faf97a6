"""Каталог продуктов"""
import json
import logging
from decimal import Decimal
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, Field

from billing.errors import ProductNotFound
from billing.models.subscription import ActivationCmd

logger = logging.getLogger(__name__)


class Product(BaseModel):
    """Продукт из products.config.json"""

    model_config = {"frozen": True}

    key: str
    cmd: ActivationCmd
    cost: Decimal = Field(..., gt=0, description="Price in XCH")
    name: str | None = None
    description: str | None = None


class ProductCatalog:
    """Read-only каталог продуктов, загружается один раз при старте"""

    def __init__(self, products: Mapping[str, Product]):
        self._products = MappingProxyType(dict(products))

    @classmethod
    def from_dict(cls, raw: dict) -> "ProductCatalog":
        return cls({key: Product(key=key, **value) for key, value in raw.items()})

    @classmethod
    def load(cls, path: Path) -> "ProductCatalog":
        """Загружает каталог из JSON файла"""
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f, parse_float=Decimal)
        except FileNotFoundError:
            logger.error(f"Файл {path} не найден")
            raise
        catalog = cls.from_dict(raw)
        logger.info(f"📦 Загружено продуктов: {len(catalog)}")
        return catalog

    def get(self, product_key: str) -> Product:
        product = self._products.get(product_key)
        if product is None:
            raise ProductNotFound(product_key)
        return product

    def __len__(self) -> int:
        return len(self._products)
