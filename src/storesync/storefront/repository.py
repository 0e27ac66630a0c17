"""Storefront repository -- narrow async read/annotate surface for the adapters.

Provides StorefrontRepository with the session_factory callable pattern.
Reads join line items with their product name and SKU; writes are limited
to external-id columns and the inventory stock level on a pull.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.storesync.storefront.models import (
    ContactSubmissionModel,
    OrderItemModel,
    OrderModel,
    ProductModel,
    ProductVariantModel,
    QuoteItemModel,
    QuoteModel,
    UserModel,
)
from src.storesync.storefront.schemas import (
    ContactSubmissionRecord,
    LineItemRecord,
    OrderRecord,
    ProductRecord,
    QuoteRecord,
    UserRecord,
    VariantRecord,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_user(model: UserModel) -> UserRecord:
    return UserRecord(
        id=str(model.id),
        email=model.email,
        first_name=model.first_name or "",
        last_name=model.last_name or "",
        phone=model.phone,
        company_name=model.company_name,
        gst_number=model.gst_number,
        role=model.role,
        billing_address=model.billing_address,
        crm_id=model.crm_id,
    )


def _model_to_variant(variant: ProductVariantModel, product: ProductModel) -> VariantRecord:
    return VariantRecord(
        id=str(variant.id),
        product_id=str(variant.product_id),
        sku=variant.sku,
        price=variant.price,
        cost_price=variant.cost_price,
        stock_quantity=variant.stock_quantity or 0,
        weight=variant.weight,
        weight_unit=variant.weight_unit,
        accounting_id=variant.accounting_id,
        accounting_synced_at=variant.accounting_synced_at,
        updated_at=variant.updated_at,
        product=ProductRecord(
            id=str(product.id),
            name=product.name,
            segment=product.segment,
            status=product.status,
        ),
    )


def _row_to_line_item(item: OrderItemModel | QuoteItemModel, name: str | None, sku: str | None) -> LineItemRecord:
    return LineItemRecord(
        product_id=str(item.product_id),
        variant_id=str(item.variant_id),
        product_name=name or "Unknown Product",
        sku=sku or "",
        quantity=item.quantity,
        unit_price=item.unit_price,
        tax_rate=item.tax_rate,
    )


# ── Repository ──────────────────────────────────────────────────────────────


class StorefrontRepository:
    """Async access to the storefront records the sync adapters consume.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Users & contact submissions ─────────────────────────────────────────

    async def get_user(self, user_id: str) -> UserRecord | None:
        async for session in self._session_factory():
            model = await session.get(UserModel, user_id)
            return _model_to_user(model) if model is not None else None

    async def set_user_crm_id(self, user_id: str, crm_id: str) -> None:
        async for session in self._session_factory():
            await session.execute(
                update(UserModel).where(UserModel.id == user_id).values(crm_id=crm_id)
            )
            await session.commit()

    async def get_contact_submission(self, submission_id: str) -> ContactSubmissionRecord | None:
        async for session in self._session_factory():
            model = await session.get(ContactSubmissionModel, submission_id)
            if model is None:
                return None
            return ContactSubmissionRecord(
                id=str(model.id),
                name=model.name,
                email=model.email,
                phone=model.phone,
                company=model.company,
                subject=model.subject,
                message=model.message,
                status=model.status,
            )

    async def mark_submission_processed(self, submission_id: str, lead_id: str) -> None:
        async for session in self._session_factory():
            await session.execute(
                update(ContactSubmissionModel)
                .where(ContactSubmissionModel.id == submission_id)
                .values(status="processed", crm_id=lead_id)
            )
            await session.commit()

    async def list_new_contact_submissions(self, limit: int) -> list[str]:
        async for session in self._session_factory():
            stmt = (
                select(ContactSubmissionModel.id)
                .where(ContactSubmissionModel.status == "new")
                .order_by(ContactSubmissionModel.created_at)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [str(row) for row in result.scalars().all()]

    # ── Orders ──────────────────────────────────────────────────────────────

    async def get_order(self, order_id: str) -> OrderRecord | None:
        """Load an order with its customer and line items."""
        async for session in self._session_factory():
            order = await session.get(OrderModel, order_id)
            if order is None:
                return None
            user = await session.get(UserModel, order.user_id)
            if user is None:
                logger.warning("storefront.order_without_user", order_id=order_id)
                return None

            stmt = (
                select(OrderItemModel, ProductModel.name, ProductVariantModel.sku)
                .outerjoin(ProductVariantModel, ProductVariantModel.id == OrderItemModel.variant_id)
                .outerjoin(ProductModel, ProductModel.id == OrderItemModel.product_id)
                .where(OrderItemModel.order_id == order_id)
            )
            rows = (await session.execute(stmt)).all()

            return OrderRecord(
                id=str(order.id),
                order_number=order.order_number,
                user_id=str(order.user_id),
                payment_status=order.payment_status,
                subtotal=order.subtotal,
                tax_amount=order.tax_amount,
                total_amount=order.total_amount,
                accounting_id=order.accounting_id,
                created_at=order.created_at,
                user=_model_to_user(user),
                items=[_row_to_line_item(item, name, sku) for item, name, sku in rows],
            )

    async def set_order_accounting_id(self, order_id: str, accounting_id: str) -> None:
        async for session in self._session_factory():
            await session.execute(
                update(OrderModel).where(OrderModel.id == order_id).values(accounting_id=accounting_id)
            )
            await session.commit()

    async def list_unsynced_paid_orders(self, limit: int) -> list[str]:
        async for session in self._session_factory():
            stmt = (
                select(OrderModel.id)
                .where(OrderModel.payment_status == "paid", OrderModel.accounting_id.is_(None))
                .order_by(OrderModel.created_at)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [str(row) for row in result.scalars().all()]

    # ── B2B quotes ──────────────────────────────────────────────────────────

    async def get_quote(self, quote_id: str) -> QuoteRecord | None:
        """Load a quote with its requesting user and line items."""
        async for session in self._session_factory():
            quote = await session.get(QuoteModel, quote_id)
            if quote is None:
                return None
            user = await session.get(UserModel, quote.user_id)
            if user is None:
                logger.warning("storefront.quote_without_user", quote_id=quote_id)
                return None

            stmt = (
                select(QuoteItemModel, ProductModel.name, ProductVariantModel.sku)
                .outerjoin(ProductVariantModel, ProductVariantModel.id == QuoteItemModel.variant_id)
                .outerjoin(ProductModel, ProductModel.id == QuoteItemModel.product_id)
                .where(QuoteItemModel.quote_id == quote_id)
            )
            rows = (await session.execute(stmt)).all()

            return QuoteRecord(
                id=str(quote.id),
                user_id=str(quote.user_id),
                status=quote.status,
                notes=quote.notes,
                valid_until=quote.valid_until,
                subtotal=quote.subtotal,
                tax_amount=quote.tax_amount,
                total_amount=quote.total_amount,
                crm_id=quote.crm_id,
                accounting_id=quote.accounting_id,
                user=_model_to_user(user),
                items=[_row_to_line_item(item, name, sku) for item, name, sku in rows],
            )

    async def set_quote_crm_id(self, quote_id: str, crm_id: str) -> None:
        async for session in self._session_factory():
            await session.execute(
                update(QuoteModel).where(QuoteModel.id == quote_id).values(crm_id=crm_id)
            )
            await session.commit()

    async def set_quote_accounting_id(self, quote_id: str, accounting_id: str) -> None:
        async for session in self._session_factory():
            await session.execute(
                update(QuoteModel).where(QuoteModel.id == quote_id).values(accounting_id=accounting_id)
            )
            await session.commit()

    async def list_unsynced_approved_quotes(self, limit: int) -> list[str]:
        async for session in self._session_factory():
            stmt = (
                select(QuoteModel.id)
                .where(QuoteModel.status == "approved", QuoteModel.accounting_id.is_(None))
                .order_by(QuoteModel.created_at)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [str(row) for row in result.scalars().all()]

    # ── Inventory ───────────────────────────────────────────────────────────

    async def get_variant(self, variant_id: str) -> VariantRecord | None:
        async for session in self._session_factory():
            stmt = (
                select(ProductVariantModel, ProductModel)
                .join(ProductModel, ProductModel.id == ProductVariantModel.product_id)
                .where(ProductVariantModel.id == variant_id)
            )
            row = (await session.execute(stmt)).first()
            if row is None:
                return None
            return _model_to_variant(*row)

    async def find_variant_by_sku(self, sku: str) -> VariantRecord | None:
        async for session in self._session_factory():
            stmt = (
                select(ProductVariantModel, ProductModel)
                .join(ProductModel, ProductModel.id == ProductVariantModel.product_id)
                .where(ProductVariantModel.sku == sku)
                .limit(1)
            )
            row = (await session.execute(stmt)).first()
            if row is None:
                return None
            return _model_to_variant(*row)

    async def list_variants_needing_push(self, limit: int) -> list[str]:
        """Active-product variants never pushed, or changed since the last push."""
        async for session in self._session_factory():
            stmt = (
                select(ProductVariantModel.id)
                .join(ProductModel, ProductModel.id == ProductVariantModel.product_id)
                .where(
                    ProductModel.status == "active",
                    or_(
                        ProductVariantModel.accounting_id.is_(None),
                        ProductVariantModel.accounting_synced_at.is_(None),
                        ProductVariantModel.updated_at > ProductVariantModel.accounting_synced_at,
                    ),
                )
                .order_by(ProductVariantModel.updated_at.desc().nulls_last())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [str(row) for row in result.scalars().all()]

    async def set_variant_remote_item(self, variant_id: str, item_id: str, synced_at: datetime) -> None:
        """Record the remote item id after a push.

        updated_at is set to the same instant so the variant is not picked up
        again by the next batch push.
        """
        async for session in self._session_factory():
            await session.execute(
                update(ProductVariantModel)
                .where(ProductVariantModel.id == variant_id)
                .values(accounting_id=item_id, accounting_synced_at=synced_at, updated_at=synced_at)
            )
            await session.commit()

    async def set_variant_stock(self, variant_id: str, quantity: int, synced_at: datetime) -> None:
        """Overwrite local stock with the remote value after a pull."""
        async for session in self._session_factory():
            await session.execute(
                update(ProductVariantModel)
                .where(ProductVariantModel.id == variant_id)
                .values(stock_quantity=quantity, accounting_synced_at=synced_at, updated_at=synced_at)
            )
            await session.commit()
