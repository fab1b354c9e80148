# socialsync/services/catalog_sync.py
import hashlib
import json
from typing import Dict, Optional

from sqlalchemy.orm import Session

from socialsync.db import crud
from socialsync.db.models import Product, ShopConnection
from socialsync.services.platform_client import PlatformClient
from socialsync.services.sync_types import CatalogItem, ProductPayload

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"


def to_payload(product: Product) -> ProductPayload:
    return ProductPayload(
        external_id=product.external_id,
        name=product.name,
        description=product.description,
        price=product.price,
        currency=product.currency,
        image_url=product.image_url,
        product_url=product.product_url,
    )


def fingerprint(payload: ProductPayload) -> str:
    blob = json.dumps(payload.model_dump(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()


def push_product(db: Session, client: PlatformClient, shop: ShopConnection, access_token: str,
                 product: Product, remote: Dict[str, CatalogItem]) -> str:
    """Create or update one product on the platform and record the link.

    Returns CREATED, UPDATED or UNCHANGED. Exceptions propagate to the caller,
    which isolates them per item.
    """
    payload = to_payload(product)
    fp = fingerprint(payload)
    link = crud.get_product_link(db, product.id, shop.platform)
    item: Optional[CatalogItem] = remote.get(product.external_id)

    platform_product_id = (item.platform_product_id if item else None) or (link.platform_product_id if link else None)
    if not platform_product_id:
        new_id = client.create_product(shop.platform, access_token, shop.catalog_id, payload)
        crud.save_product_link(db, product.id, shop.platform, new_id, fp)
        return CREATED

    known_fp = (item.fingerprint if item and item.fingerprint else None) or (link.synced_fingerprint if link else None)
    if known_fp == fp:
        if not link or link.platform_product_id != platform_product_id:
            crud.save_product_link(db, product.id, shop.platform, platform_product_id, fp)
        return UNCHANGED

    client.update_product(shop.platform, access_token, shop.catalog_id, platform_product_id, payload)
    crud.save_product_link(db, product.id, shop.platform, platform_product_id, fp)
    return UPDATED
