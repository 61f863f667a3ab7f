"""Inventory operations on top of the data store and image storage.

Every function takes the store (and storage where images are involved)
plus the signed-in user's uid; records live under ``{ROOT_NODE}/{uid}``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from io import BytesIO
from typing import Dict, List, Optional, Tuple

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.pagesizes import landscape, letter
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle

from core.config import APP_TZ, LOW_STOCK_THRESHOLD, ROOT_NODE
from core.constants import (
    COUNTERS_NODE,
    GATE_PASSES_NODE,
    INCOMING_NODE,
    PRODUCTS_NODE,
    PROFILE_NODE,
)
from core.gate_pass import GatePassSlipInput, SlipGenerator, SlipItem
from core.schemas import (
    DispatchForm,
    GatePass,
    GatePassItem,
    GatePassLine,
    IncomingLog,
    Product,
    ProductForm,
    ProfileForm,
    RestockForm,
    UserProfileData,
)
from core.storage import ImageStorage
from core.store import TreeStore, join_path

logger = logging.getLogger(__name__)

# (filename, bytes, content type) of an uploaded image
ImageUpload = Tuple[str, bytes, str]

PRODUCT_COLUMNS = [
    "id", "name", "sku", "category", "current_stock", "unit_price",
    "supplier", "description", "image_url", "created_at", "updated_at",
]


def user_path(uid: str, *parts) -> str:
    """Path of a node inside the user's tree."""
    if not uid:
        raise ValueError("User not authenticated.")
    return join_path(ROOT_NODE, uid, *parts)


def now_iso() -> str:
    return datetime.now(APP_TZ).isoformat()


def _children(store: TreeStore, path: str) -> Dict[str, dict]:
    data = store.get(path)
    if isinstance(data, list):
        data = {str(i): v for i, v in enumerate(data) if v is not None}
    return {k: v for k, v in (data or {}).items() if isinstance(v, dict)}


# ============================================================================
# Products
# ============================================================================

def stock_status(stock: int, threshold: int = LOW_STOCK_THRESHOLD) -> str:
    if stock <= 0:
        return "Out of Stock"
    if stock < threshold:
        return "Low Stock"
    return "In Stock"


def get_products(store: TreeStore, uid: str) -> List[Product]:
    """All products of the user, sorted by name."""
    products = []
    for product_id, data in _children(store, user_path(uid, PRODUCTS_NODE)).items():
        products.append(Product.model_validate({**data, "id": product_id}))
    return sorted(products, key=lambda p: p.name.casefold())


def list_products(store: TreeStore, uid: str, threshold: int = LOW_STOCK_THRESHOLD) -> pd.DataFrame:
    """Products as a DataFrame with a ``status`` column."""
    return products_frame(get_products(store, uid), threshold)


def products_frame(products: List[Product], threshold: int = LOW_STOCK_THRESHOLD) -> pd.DataFrame:
    if not products:
        return pd.DataFrame(columns=PRODUCT_COLUMNS + ["status"])
    df = pd.DataFrame([p.model_dump() for p in products])
    df = df[PRODUCT_COLUMNS]
    df["status"] = df["current_stock"].apply(lambda s: stock_status(int(s), threshold))
    return df


def get_product(store: TreeStore, uid: str, product_id: str) -> Optional[Product]:
    if not product_id:
        return None
    data = store.get(user_path(uid, PRODUCTS_NODE, product_id))
    if not isinstance(data, dict):
        return None
    return Product.model_validate({**data, "id": product_id})


def search_products(products: List[Product], term: str) -> List[Product]:
    """Case-insensitive match on name, SKU or category."""
    term = (term or "").strip().casefold()
    if not term:
        return list(products)
    return [
        p for p in products
        if term in p.name.casefold() or term in p.sku.casefold() or term in (p.category or "").casefold()
    ]


def _check_unique_sku(store: TreeStore, uid: str, sku: str, exclude_id: str = "") -> None:
    for product in get_products(store, uid):
        if product.id != exclude_id and product.sku.casefold() == sku.casefold():
            raise ValueError(f"Duplicate SKU: {sku} is already used by {product.name}.")


def _discard_image(storage: ImageStorage, object_path: str) -> None:
    """Best-effort image removal; failures are only logged."""
    if not object_path:
        return
    try:
        storage.delete(object_path)
    except Exception:
        logger.warning("Could not delete image %s", object_path, exc_info=True)


def add_product(
    store: TreeStore,
    storage: ImageStorage,
    uid: str,
    form: ProductForm,
    image: Optional[ImageUpload] = None,
) -> Product:
    """Create a product, uploading its image first when one is given."""
    _check_unique_sku(store, uid, form.sku)

    image_url, image_path = "", ""
    if image:
        image_url, image_path = storage.upload(uid, *image)

    now = now_iso()
    product = Product(
        id=store.push_key(),
        **form.model_dump(),
        image_url=image_url,
        image_path=image_path,
        created_at=now,
        updated_at=now,
        user_id=uid,
    )
    try:
        store.set(user_path(uid, PRODUCTS_NODE, product.id), product.to_store())
    except Exception:
        _discard_image(storage, image_path)
        raise
    logger.info("Product %s (%s) added for %s", product.name, product.sku, uid)
    return product


def update_product(
    store: TreeStore,
    storage: ImageStorage,
    uid: str,
    product_id: str,
    form: ProductForm,
    image: Optional[ImageUpload] = None,
    remove_image: bool = False,
) -> Product:
    """Edit a product in place. Stock is set directly from the form."""
    existing = get_product(store, uid, product_id)
    if existing is None:
        raise ValueError("Product not found.")
    _check_unique_sku(store, uid, form.sku, exclude_id=product_id)

    image_url, image_path = existing.image_url, existing.image_path
    if image:
        image_url, image_path = storage.upload(uid, *image)
    elif remove_image:
        image_url, image_path = "", ""

    product = existing.model_copy(
        update={
            **form.model_dump(),
            "image_url": image_url,
            "image_path": image_path,
            "updated_at": now_iso(),
            "user_id": uid,
        }
    )
    try:
        store.set(user_path(uid, PRODUCTS_NODE, product_id), product.to_store())
    except Exception:
        if image:
            _discard_image(storage, image_path)
        raise
    if existing.image_path and existing.image_path != image_path:
        _discard_image(storage, existing.image_path)
    return product


def delete_product(store: TreeStore, storage: ImageStorage, uid: str, product_id: str) -> Product:
    """Remove the record, then its image. Image failures never block deletion."""
    product = get_product(store, uid, product_id)
    if product is None:
        raise ValueError("Product not found.")
    store.remove(user_path(uid, PRODUCTS_NODE, product_id))
    _discard_image(storage, product.image_path)
    logger.info("Product %s deleted for %s", product_id, uid)
    return product


def _export_frame(df: pd.DataFrame) -> pd.DataFrame:
    export_cols = {
        "name": "Name",
        "sku": "SKU",
        "category": "Category",
        "current_stock": "Stock",
        "unit_price": "Unit Price",
        "supplier": "Supplier",
        "status": "Status",
        "description": "Description",
    }
    export_df = df.copy()
    for col in export_cols:
        if col not in export_df.columns:
            export_df[col] = ""
    return export_df[list(export_cols)].rename(columns=export_cols)


def export_products_excel(df: pd.DataFrame) -> bytes:
    from openpyxl.utils import get_column_letter
    from openpyxl.worksheet.table import Table as XlTable, TableStyleInfo as XlTableStyleInfo

    export_df = _export_frame(df)
    buf = BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        export_df.to_excel(writer, index=False, sheet_name="products")
        ws = writer.sheets["products"]
        if len(export_df):
            last_col = get_column_letter(len(export_df.columns))
            table = XlTable(displayName="ProductsExport", ref=f"A1:{last_col}{len(export_df) + 1}")
            table.tableStyleInfo = XlTableStyleInfo(
                name="TableStyleMedium9",
                showFirstColumn=False,
                showLastColumn=False,
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(table)
        for idx, col_name in enumerate(export_df.columns, start=1):
            ws.column_dimensions[get_column_letter(idx)].width = max(12, len(str(col_name)) + 2)
    return buf.getvalue()


def export_products_pdf(df: pd.DataFrame) -> bytes:
    export_df = _export_frame(df).drop(columns=["Description"])
    buf = BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=landscape(letter), title="Product Catalog")
    data = [list(export_df.columns)] + export_df.fillna("").astype(str).values.tolist()
    table = Table(data, repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ]
        )
    )
    doc.build([table])
    return buf.getvalue()


# ============================================================================
# Incoming stock
# ============================================================================

def record_incoming(store: TreeStore, uid: str, form: RestockForm) -> IncomingLog:
    """Add received units to a product and write the incoming log.

    The stock increment happens first. If the log write then fails, the
    increment is reversed on a best-effort basis and the original error is
    raised.
    """
    product = get_product(store, uid, form.product_id)
    if product is None:
        raise ValueError("Selected product not found.")

    stock_path = user_path(uid, PRODUCTS_NODE, product.id, "currentStock")
    new_stock = store.increment(stock_path, form.quantity)

    now = now_iso()
    log = IncomingLog(
        id=store.push_key(),
        product_id=product.id,
        product_name=product.name,
        product_sku=product.sku,
        quantity=form.quantity,
        received_at=form.received_at.isoformat(),
        purchase_order=form.purchase_order,
        supplier=form.supplier or product.supplier,
        timestamp=now,
        user_id=uid,
    )
    try:
        store.update(
            {
                user_path(uid, INCOMING_NODE, log.id): log.to_store(),
                user_path(uid, PRODUCTS_NODE, product.id, "updatedAt"): now,
            }
        )
    except Exception:
        logger.exception("Incoming log write failed for %s; reverting stock", product.id)
        try:
            store.increment(stock_path, -form.quantity)
        except Exception:
            logger.exception("Stock rollback failed for %s (+%s left applied)", product.id, form.quantity)
        raise
    logger.info("Received %s x %s (stock now %s)", form.quantity, product.sku, new_stock)
    return log


def list_incoming_logs(store: TreeStore, uid: str) -> List[IncomingLog]:
    """Incoming logs, newest first."""
    logs = [
        IncomingLog.model_validate({**data, "id": log_id})
        for log_id, data in _children(store, user_path(uid, INCOMING_NODE)).items()
    ]
    return sorted(logs, key=lambda log: (log.timestamp, log.id), reverse=True)


# ============================================================================
# Outgoing stock / gate passes
# ============================================================================

@dataclass
class GatePassResult:
    gate_pass: GatePass
    slip_error: Optional[str] = None


def merge_lines(lines: List[GatePassLine]) -> List[GatePassLine]:
    """Combine lines for the same product, keeping first-seen order."""
    merged: Dict[str, int] = {}
    for line in lines:
        merged[line.product_id] = merged.get(line.product_id, 0) + line.quantity
    return [GatePassLine(product_id=pid, quantity=qty) for pid, qty in merged.items()]


def create_gate_pass(
    store: TreeStore,
    uid: str,
    form: DispatchForm,
    user_name: str = "",
    user_email: str = "",
    slip_generator: Optional[SlipGenerator] = None,
    shop_name: str = "",
) -> GatePassResult:
    """Dispatch products and record the gate pass.

    Stock is checked for every line before anything is written. Stock
    decrements and the gate pass record go out in one multi-path update.
    Slip generation runs afterwards; its failure leaves the dispatch in place.
    """
    lines = merge_lines(form.items)
    products: Dict[str, Product] = {}
    for line in lines:
        product = get_product(store, uid, line.product_id)
        if product is None:
            raise ValueError(f"Product not found: {line.product_id}")
        if line.quantity > product.current_stock:
            raise ValueError(
                f"Insufficient stock for {product.name}: requested {line.quantity}, "
                f"available {product.current_stock}"
            )
        products[line.product_id] = product

    number = store.increment(user_path(uid, COUNTERS_NODE, "gatePassNumber"), 1)
    pass_id = store.push_key()
    now = now_iso()
    items = [
        GatePassItem(
            product_id=line.product_id,
            name=products[line.product_id].name,
            sku=products[line.product_id].sku,
            quantity=line.quantity,
            image_url=products[line.product_id].image_url,
        )
        for line in lines
    ]
    gate_pass = GatePass(
        id=pass_id,
        items=items,
        destination=form.destination,
        reason=form.reason,
        date=form.dispatched_at.isoformat(),
        total_quantity=sum(item.quantity for item in items),
        user_id=uid,
        user_name=user_name,
        user_email=user_email,
        created_at=now,
        qr_code_data=pass_id,
        gate_pass_number=number,
    )

    updates = {user_path(uid, GATE_PASSES_NODE, pass_id): gate_pass.to_store()}
    for line in lines:
        product = products[line.product_id]
        updates[user_path(uid, PRODUCTS_NODE, product.id, "currentStock")] = product.current_stock - line.quantity
        updates[user_path(uid, PRODUCTS_NODE, product.id, "updatedAt")] = now
    store.update(updates)
    logger.info("Gate pass #%s (%s) created: %s units", number, pass_id, gate_pass.total_quantity)

    result = GatePassResult(gate_pass=gate_pass)
    if slip_generator is not None:
        result.slip_error = attach_slip(store, uid, gate_pass, slip_generator, shop_name)
    return result


def slip_input(gate_pass: GatePass, shop_name: str = "") -> GatePassSlipInput:
    return GatePassSlipInput(
        items=[SlipItem(product_name=item.name, quantity=item.quantity) for item in gate_pass.items],
        destination=gate_pass.destination,
        reason=gate_pass.reason,
        date=gate_pass.date,
        user_name=gate_pass.user_name or gate_pass.user_email,
        qr_code_data=gate_pass.qr_code_data,
        gate_pass_number=gate_pass.gate_pass_number,
        shop_name=shop_name,
    )


def attach_slip(
    store: TreeStore,
    uid: str,
    gate_pass: GatePass,
    slip_generator: SlipGenerator,
    shop_name: str = "",
) -> Optional[str]:
    """Generate the printable text and store it on the pass.

    Returns an error message instead of raising, since the dispatch is
    already committed; ``gate_pass`` is updated in place on success.
    """
    try:
        content = slip_generator.generate(slip_input(gate_pass, shop_name))
        store.set(user_path(uid, GATE_PASSES_NODE, gate_pass.id, "generatedPassContent"), content)
    except Exception as e:
        logger.exception("Slip generation failed for gate pass %s", gate_pass.id)
        return str(e)
    gate_pass.generated_pass_content = content
    return None


def list_gate_passes(store: TreeStore, uid: str) -> List[GatePass]:
    """Gate passes, newest first."""
    passes = [
        GatePass.model_validate({**data, "id": pass_id})
        for pass_id, data in _children(store, user_path(uid, GATE_PASSES_NODE)).items()
    ]
    return sorted(passes, key=lambda gp: (gp.created_at, gp.gate_pass_number), reverse=True)


def get_gate_pass(store: TreeStore, uid: str, pass_id: str) -> Optional[GatePass]:
    """Look up a pass by the id encoded in its QR code."""
    pass_id = (pass_id or "").strip()
    if not pass_id:
        raise ValueError("Please enter a Pass ID.")
    if any(ch in pass_id for ch in "/.#$[]"):
        return None
    data = store.get(user_path(uid, GATE_PASSES_NODE, pass_id))
    if not isinstance(data, dict):
        return None
    return GatePass.model_validate({**data, "id": pass_id})


# ============================================================================
# Profile
# ============================================================================

def get_profile(store: TreeStore, uid: str) -> UserProfileData:
    data = store.get(user_path(uid, PROFILE_NODE))
    if not isinstance(data, dict):
        return UserProfileData()
    return UserProfileData.model_validate(data)


def save_profile(store: TreeStore, uid: str, form: ProfileForm) -> UserProfileData:
    """Overwrite the profile record."""
    profile = UserProfileData(**form.model_dump())
    store.set(user_path(uid, PROFILE_NODE), profile.to_store())
    return profile


# ============================================================================
# Dashboard
# ============================================================================

def _day_of(value: str) -> Optional[date]:
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(APP_TZ)
    return parsed.date()


def inventory_summary(
    products: List[Product],
    incoming: List[IncomingLog],
    passes: List[GatePass],
    today: Optional[date] = None,
) -> dict:
    today = today or datetime.now(APP_TZ).date()
    return {
        "total_products": len(products),
        "total_stock_units": sum(p.current_stock for p in products),
        "incoming_today": sum(log.quantity for log in incoming if _day_of(log.received_at) == today),
        "outgoing_today": sum(gp.total_quantity for gp in passes if _day_of(gp.date) == today),
    }


def stock_overview(products: List[Product], top: int = 10) -> pd.DataFrame:
    """Highest-stock products for the overview chart."""
    rows = sorted(
        ({"name": p.name, "stock": p.current_stock} for p in products),
        key=lambda r: r["stock"],
        reverse=True,
    )[:top]
    return pd.DataFrame(rows, columns=["name", "stock"])


def recent_activity(
    products: List[Product],
    incoming: List[IncomingLog],
    passes: List[GatePass],
    limit: int = 8,
) -> List[dict]:
    """Merged feed of registrations, receipts and dispatches, newest first."""
    events = []
    for p in products:
        if p.created_at:
            events.append({"kind": "product", "timestamp": p.created_at,
                           "message": f'New product "{p.name}" registered'})
    for log in incoming:
        events.append({"kind": "incoming", "timestamp": log.timestamp,
                       "message": f'Received {log.quantity} units of "{log.product_name}"'})
    for gp in passes:
        names = ", ".join(item.name for item in gp.items[:3])
        if len(gp.items) > 3:
            names += ", ..."
        events.append({"kind": "outgoing", "timestamp": gp.created_at,
                       "message": f"Shipped {gp.total_quantity} units ({names}) to {gp.destination}"})
    events.sort(key=lambda e: e["timestamp"], reverse=True)
    return events[:limit]
