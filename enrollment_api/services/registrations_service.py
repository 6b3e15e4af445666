from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal

from enrollment_api.config import Settings, settings
from enrollment_api.domain.dtos import (
    AddStagesRequest,
    CreateAdminRegistrationRequest,
    CreateRegistrationRequest,
    PaymentView,
    UpdateAdminRegistrationRequest,
)
from enrollment_api.domain.enums import (
    AdminPaymentStatus,
    BillingType,
    InscriptionType,
    PaymentMethod,
    RegistrationStatus,
)
from enrollment_api.domain.errors import (
    ConflictError,
    GatewayError,
    GatewaySemanticError,
    NotFoundError,
    ValidationError,
)
from enrollment_api.domain.models import (
    Category,
    Championship,
    PaymentRecord,
    Registration,
    RegistrationCategory,
    RegistrationStage,
    Season,
    Stage,
    User,
)
from enrollment_api.domain.statuses import OPEN_STATUSES, GatewayPaymentStatus, PaymentStatus
from enrollment_api.providers.base import CustomerProfile, GatewayPayment, PaymentGateway
from enrollment_api.repositories.base import Repositories
from enrollment_api.utils.documents import normalize_document

from .installments import fetch_qr_code, materialize_installment_plan
from .payment_records import (
    default_due_date,
    merge_gateway_state,
    payment_view,
    record_from_gateway,
    view_sort_key,
)
from .pricing import build_split, compute_amount, to_money
from .reconciliation import RegistrationReconciler

GATEWAY_METHODS = (PaymentMethod.PIX, PaymentMethod.CREDIT_CARD)


@dataclass
class _EnrollmentAttempt:
    """Local writes of one enrollment attempt, undone when a later step fails."""

    registration_id: str | None = None
    created_registration: bool = False
    previous_amount: Decimal | None = None
    previous_method: PaymentMethod | None = None
    existing_payment_ids: set[str] = field(default_factory=set)
    category_row_ids: list[str] = field(default_factory=list)
    stage_row_ids: list[str] = field(default_factory=list)


@dataclass
class _EnrollmentContext:
    user: User
    season: Season
    championship: Championship
    categories: list[Category]
    stages: list[Stage]
    document: str
    inscription_type: InscriptionType
    existing: Registration | None


class RegistrationsService:
    """Enrollment use cases: validation, pricing, gateway calls and rollback."""

    def __init__(
        self,
        repos: Repositories,
        gateway: PaymentGateway,
        cfg: Settings = settings,
        reconciler: RegistrationReconciler | None = None,
    ):
        self.repos = repos
        self.gateway = gateway
        self.settings = cfg
        self.reconciler = reconciler or RegistrationReconciler(repos)
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_registration(
        self, request: CreateRegistrationRequest
    ) -> tuple[Registration, PaymentView]:
        ctx = await self._validate_enrollment(request)
        method = request.payment_method
        if request.total_amount is not None and request.total_amount > 0:
            amount = to_money(request.total_amount)
        else:
            amount = compute_amount(
                unit_price=ctx.season.unit_price(ctx.inscription_type),
                category_count=len(ctx.categories),
                stage_count=len(ctx.stages),
                inscription_type=ctx.inscription_type,
                championship=ctx.championship,
                default_commission=self.settings.default_platform_commission,
            )

        attempt = _EnrollmentAttempt()
        try:
            registration = await self._persist_enrollment(request, ctx, amount, attempt)
            primary = await self._charge(
                registration,
                ctx,
                method=method,
                installments=request.installments,
                amount=amount,
            )
            await self.reconciler.reconcile(registration.id)
        except Exception:
            await self._rollback(attempt)
            raise

        registration = await self.repos.registrations.find(registration.id) or registration
        self.logger.info(
            "registration created",
            extra={
                "registration_id": registration.id,
                "user_id": registration.user_id,
                "season_id": registration.season_id,
                "amount": amount,
                "payment_status": registration.payment_status.value,
            },
        )
        return registration, primary

    async def _validate_enrollment(self, request: CreateRegistrationRequest) -> _EnrollmentContext:
        user = await self.repos.users.find(request.user_id)
        if user is None:
            raise NotFoundError("user not found")
        season = await self.repos.seasons.find(request.season_id)
        if season is None:
            raise NotFoundError("season not found")
        if not season.registration_open:
            raise ValidationError("registrations are not open for this season")

        raw_document = request.user_document.strip() or (user.document or "").strip()
        if not raw_document:
            raise ValidationError("a CPF/CNPJ is required to enroll", code="required_cpfCnpj")
        document = normalize_document(raw_document)

        inscription_type = request.inscription_type or (
            InscriptionType.STAGE if request.stage_ids else InscriptionType.SEASON
        )
        method = request.payment_method
        if request.installments > 1:
            cap = season.max_installments(method, inscription_type)
            if request.installments > cap:
                raise ValidationError(
                    f"the maximum number of installments for {method.value} in this season is {cap}"
                )

        if not request.category_ids:
            raise ValidationError("at least one category must be selected")
        categories = await self.repos.categories.find_many(
            id=list(request.category_ids), season_id=season.id
        )
        if len(categories) != len(set(request.category_ids)):
            raise ValidationError("one or more categories are invalid or belong to another season")

        championship = await self.repos.championships.find(season.championship_id)
        if championship is None:
            raise NotFoundError("championship not found")
        if (
            championship.split_enabled
            and championship.commission_absorbed_by_championship
            and not championship.asaas_wallet_id
        ):
            raise ValidationError(
                "championship has split payments enabled but no wallet id configured",
                code="invalid_split",
            )

        existing = await self.repos.registrations.find_one(user_id=user.id, season_id=season.id)
        if existing is not None:
            await self._check_duplicate(existing, inscription_type, request.stage_ids)

        accepted = {
            BillingType.from_payment_method(m).value
            for m in season.payment_methods_for(inscription_type)
        }
        if method not in GATEWAY_METHODS or BillingType.from_payment_method(method).value not in accepted:
            raise ValidationError(f"payment method {method.value} is not accepted for this season")

        stages: list[Stage] = []
        if inscription_type == InscriptionType.STAGE:
            if not request.stage_ids:
                raise ValidationError("at least one stage must be selected")
            stages = await self.repos.stages.find_many(id=list(request.stage_ids), season_id=season.id)
            if len(stages) != len(set(request.stage_ids)):
                raise ValidationError("one or more stages are invalid or belong to another season")

        return _EnrollmentContext(
            user=user,
            season=season,
            championship=championship,
            categories=categories,
            stages=stages,
            document=document,
            inscription_type=inscription_type,
            existing=existing,
        )

    async def _check_duplicate(
        self,
        existing: Registration,
        inscription_type: InscriptionType,
        stage_ids: list[str],
    ) -> None:
        if inscription_type == InscriptionType.SEASON or existing.inscription_type == InscriptionType.SEASON:
            raise ConflictError("user is already enrolled in this season", code="duplicate_registration")
        if existing.status == RegistrationStatus.CANCELLED:
            raise ConflictError(
                "the registration for this season was cancelled", code="cancelled_registration"
            )
        selected = {
            row.stage_id
            for row in await self.repos.registration_stages.find_many(registration_id=existing.id)
        }
        duplicates = [stage_id for stage_id in stage_ids if stage_id in selected]
        if duplicates:
            names = ", ".join(s.name for s in await self.repos.stages.find_many(id=duplicates))
            raise ConflictError(
                f"already enrolled in the following stages: {names}", code="duplicate_stage"
            )

    async def _persist_enrollment(
        self,
        request: CreateRegistrationRequest,
        ctx: _EnrollmentContext,
        amount: Decimal,
        attempt: _EnrollmentAttempt,
    ) -> Registration:
        existing = ctx.existing
        if existing is not None:
            attempt.registration_id = existing.id
            attempt.previous_amount = existing.amount
            attempt.previous_method = existing.payment_method
            attempt.existing_payment_ids = {
                r.id for r in await self.repos.payments.find_many(registration_id=existing.id)
            }
            registration = await self.repos.registrations.update(
                existing.id,
                {"amount": to_money(existing.amount + amount), "payment_method": request.payment_method},
            )
            if registration is None:
                raise NotFoundError("registration not found")
        else:
            registration = await self.repos.registrations.create(
                Registration(
                    user_id=ctx.user.id,
                    season_id=ctx.season.id,
                    amount=amount,
                    inscription_type=ctx.inscription_type,
                    payment_method=request.payment_method,
                )
            )
            attempt.registration_id = registration.id
            attempt.created_registration = True
            for category in ctx.categories:
                row = await self.repos.registration_categories.create(
                    RegistrationCategory(registration_id=registration.id, category_id=category.id)
                )
                attempt.category_row_ids.append(row.id)

        for stage in ctx.stages:
            row = await self.repos.registration_stages.create(
                RegistrationStage(registration_id=registration.id, stage_id=stage.id)
            )
            attempt.stage_row_ids.append(row.id)
        return registration

    async def _charge(
        self,
        registration: Registration,
        ctx: _EnrollmentContext,
        *,
        method: PaymentMethod,
        installments: int,
        amount: Decimal,
    ) -> PaymentView:
        customer = await self.gateway.upsert_customer(
            CustomerProfile(name=ctx.user.name, email=ctx.user.email, cpf_cnpj=ctx.document)
        )
        billing = BillingType.from_payment_method(method)
        due_date = default_due_date(self.settings)
        category_names = ", ".join(c.name for c in ctx.categories)
        description = (
            f"Inscrição de {ctx.user.name} na temporada: {ctx.season.name} - Categorias: {category_names}"
        )
        split = build_split(ctx.championship, self.settings.default_platform_commission)
        spec: dict = {
            "customer": customer.id,
            "billingType": billing.value,
            "dueDate": due_date,
            "description": description,
            "externalReference": registration.id,
        }
        if split:
            spec["split"] = split

        if installments > 1 and billing == BillingType.PIX:
            spec["totalValue"] = float(amount)
            spec["installmentCount"] = installments
            plan = await self.gateway.create_installment_plan(spec)
            await materialize_installment_plan(
                self.repos,
                self.gateway,
                registration_id=registration.id,
                plan_id=plan.id,
                customer_id=customer.id,
                installment_count=installments,
                billing_type=billing.value,
                fallback_due_date=due_date,
            )
            records = await self.repos.payments.find_many(
                registration_id=registration.id, external_installment_plan_id=plan.id
            )
            views = sorted((payment_view(r) for r in records), key=view_sort_key)
            return views[0]

        if installments > 1:
            spec["installmentCount"] = installments
            spec["totalValue"] = float(amount)
        else:
            spec["value"] = float(amount)
        if billing == BillingType.CREDIT_CARD:
            spec["callback"] = {
                "successUrl": (
                    f"{self.settings.backend_url.rstrip('/')}"
                    f"/api/registrations/{registration.id}/payment-callback"
                ),
                "autoRedirect": True,
            }
        payment = await self.gateway.create_payment(spec)
        qr_code = await fetch_qr_code(self.gateway, payment) if billing == BillingType.PIX else None
        record = await self.repos.payments.create(
            record_from_gateway(
                payment,
                registration_id=registration.id,
                billing_type=billing.value,
                customer_id=customer.id,
                installment_count=installments if installments > 1 else None,
                qr_code=qr_code,
                fallback_due_date=due_date,
            )
        )
        return payment_view(record)

    async def _rollback(self, attempt: _EnrollmentAttempt) -> None:
        if attempt.registration_id is None:
            return
        registration_id = attempt.registration_id
        try:
            for record in await self.repos.payments.find_many(registration_id=registration_id):
                if record.id not in attempt.existing_payment_ids:
                    await self.repos.payments.delete(record.id)
            for row_id in attempt.stage_row_ids:
                await self.repos.registration_stages.delete(row_id)
            if attempt.created_registration:
                await self.repos.registration_categories.delete_many(registration_id=registration_id)
                await self.repos.registrations.delete(registration_id)
            elif attempt.previous_amount is not None:
                await self.repos.registrations.update(
                    registration_id,
                    {"amount": attempt.previous_amount, "payment_method": attempt.previous_method},
                )
        except Exception as exc:  # noqa: BLE001
            self.logger.error(
                "enrollment rollback incomplete",
                extra={"registration_id": registration_id, "error": str(exc)},
            )
            return
        self.logger.info(
            "enrollment rolled back",
            extra={"registration_id": registration_id, "operation": "ROLLBACK"},
        )

    async def create_admin_registration(self, request: CreateAdminRegistrationRequest) -> Registration:
        user = await self.repos.users.find(request.user_id)
        if user is None:
            raise NotFoundError("user not found")
        season = await self.repos.seasons.find(request.season_id)
        if season is None:
            raise NotFoundError("season not found")
        if await self.repos.registrations.find_one(user_id=user.id, season_id=season.id) is not None:
            raise ConflictError("user is already enrolled in this season", code="duplicate_registration")

        categories = await self.repos.categories.find_many(id=list(request.category_ids), season_id=season.id)
        if len(categories) != len(set(request.category_ids)):
            raise ValidationError("one or more categories are invalid or belong to another season")
        stages = await self.repos.stages.find_many(id=list(request.stage_ids), season_id=season.id)
        if len(stages) != len(set(request.stage_ids)):
            raise ValidationError("one or more stages are invalid or belong to another season")

        exempt = request.payment_status == AdminPaymentStatus.EXEMPT
        registration = await self.repos.registrations.create(
            Registration(
                user_id=user.id,
                season_id=season.id,
                amount=to_money(request.amount),
                inscription_type=InscriptionType.STAGE if stages else InscriptionType.SEASON,
                payment_method=PaymentMethod.ADMIN_EXEMPT if exempt else PaymentMethod.ADMIN_DIRECT,
                status=RegistrationStatus.CONFIRMED if exempt else RegistrationStatus.PAYMENT_PENDING,
                payment_status=PaymentStatus.EXEMPT if exempt else PaymentStatus.DIRECT_PAYMENT,
                confirmed_at=datetime.now(timezone.utc) if exempt else None,
                notes=request.notes,
            )
        )
        for category in categories:
            await self.repos.registration_categories.create(
                RegistrationCategory(registration_id=registration.id, category_id=category.id)
            )
        for stage in stages:
            await self.repos.registration_stages.create(
                RegistrationStage(registration_id=registration.id, stage_id=stage.id)
            )
        self.logger.info(
            "administrative registration created",
            extra={
                "registration_id": registration.id,
                "user_id": user.id,
                "season_id": season.id,
                "payment_status": registration.payment_status.value,
            },
        )
        return registration

    async def update_admin_registration(
        self, registration_id: str, request: UpdateAdminRegistrationRequest
    ) -> Registration:
        """Replace amount, categories and stages, and confirm the registration.

        This is how a ``direct_payment`` registration gets confirmed once the
        money was received outside the gateway.
        """
        registration = await self.repos.registrations.find(registration_id)
        if registration is None:
            raise NotFoundError("registration not found")

        categories = await self.repos.categories.find_many(
            id=list(request.category_ids), season_id=registration.season_id
        )
        if len(categories) != len(set(request.category_ids)):
            raise ValidationError("one or more categories are invalid or belong to another season")
        stages = await self.repos.stages.find_many(
            id=list(request.stage_ids), season_id=registration.season_id
        )
        if len(stages) != len(set(request.stage_ids)):
            raise ValidationError("one or more stages are invalid or belong to another season")

        exempt = request.payment_status == AdminPaymentStatus.EXEMPT
        await self.repos.registrations.update(
            registration_id,
            {
                "amount": to_money(request.amount),
                "inscription_type": InscriptionType.STAGE if stages else InscriptionType.SEASON,
                "payment_method": PaymentMethod.ADMIN_EXEMPT if exempt else PaymentMethod.ADMIN_DIRECT,
                "notes": request.notes if request.notes is not None else registration.notes,
            },
        )
        updated = await self.reconciler.confirm_administrative(
            registration_id, PaymentStatus.EXEMPT if exempt else PaymentStatus.DIRECT_PAYMENT
        )

        await self.repos.registration_categories.delete_many(registration_id=registration_id)
        await self.repos.registration_stages.delete_many(registration_id=registration_id)
        for category in categories:
            await self.repos.registration_categories.create(
                RegistrationCategory(registration_id=registration_id, category_id=category.id)
            )
        for stage in stages:
            await self.repos.registration_stages.create(
                RegistrationStage(registration_id=registration_id, stage_id=stage.id)
            )
        self.logger.info(
            "administrative registration updated",
            extra={
                "registration_id": registration_id,
                "payment_status": request.payment_status.value,
                "amount": to_money(request.amount),
            },
        )
        return updated or registration

    async def add_stages_to_registration(
        self, registration_id: str, request: AddStagesRequest
    ) -> tuple[Registration, PaymentView | None]:
        registration = await self.repos.registrations.find(registration_id)
        if registration is None:
            raise NotFoundError("registration not found")
        if registration.inscription_type != InscriptionType.STAGE:
            raise ValidationError("stages can only be added to stage-scoped registrations")

        stages = await self.repos.stages.find_many(
            id=list(request.stage_ids), season_id=registration.season_id
        )
        if len(stages) != len(set(request.stage_ids)):
            raise ValidationError("one or more stages are invalid or belong to another season")
        selected = {
            row.stage_id
            for row in await self.repos.registration_stages.find_many(registration_id=registration_id)
        }
        duplicates = [s for s in stages if s.id in selected]
        if duplicates:
            raise ConflictError(
                f"already enrolled in the following stages: {', '.join(s.name for s in duplicates)}",
                code="duplicate_stage",
            )

        if not registration.is_administrative:
            category_ids = [
                row.category_id
                for row in await self.repos.registration_categories.find_many(registration_id=registration_id)
            ]
            return await self.create_registration(
                CreateRegistrationRequest(
                    user_id=registration.user_id,
                    season_id=registration.season_id,
                    category_ids=category_ids,
                    stage_ids=list(request.stage_ids),
                    payment_method=request.payment_method,
                    user_document=request.user_document,
                    installments=request.installments,
                    total_amount=request.total_amount,
                    inscription_type=InscriptionType.STAGE,
                )
            )

        for stage in stages:
            await self.repos.registration_stages.create(
                RegistrationStage(registration_id=registration_id, stage_id=stage.id)
            )
        added = to_money(request.amount or 0)
        updated = await self.repos.registrations.update(
            registration_id, {"amount": to_money(registration.amount + added)}
        )
        self.logger.info(
            "stages added to administrative registration",
            extra={"registration_id": registration_id, "amount": added},
        )
        return updated or registration, None

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel_registration(self, registration_id: str, reason: str) -> Registration:
        registration = await self.repos.registrations.find(registration_id)
        if registration is None:
            raise NotFoundError("registration not found")
        if registration.status == RegistrationStatus.CONFIRMED:
            raise ValidationError("a confirmed registration cannot be cancelled")
        if registration.status == RegistrationStatus.CANCELLED:
            return registration

        for record in await self.repos.payments.find_many(registration_id=registration_id):
            if record.status not in OPEN_STATUSES:
                continue
            try:
                await self.gateway.cancel_payment(record.external_payment_id)
            except GatewayError as exc:
                self.logger.warning(
                    "gateway cancellation failed",
                    extra={
                        "registration_id": registration_id,
                        "external_payment_id": record.external_payment_id,
                        "error_code": exc.code,
                        "error": exc.message,
                    },
                )

        cancelled = await self.reconciler.cancel(registration_id, reason)
        await self.repos.registration_categories.delete_many(registration_id=registration_id)
        await self.repos.registration_stages.delete_many(registration_id=registration_id)
        return cancelled or registration

    # ------------------------------------------------------------------
    # Payment views and synchronization
    # ------------------------------------------------------------------

    async def get_payment_data(self, registration_id: str) -> list[PaymentView]:
        registration = await self.repos.registrations.find(registration_id)
        if registration is None:
            raise NotFoundError("registration not found")
        return await self._views_for(registration)

    async def _views_for(self, registration: Registration) -> list[PaymentView]:
        records = await self.repos.payments.find_many(registration_id=registration.id)
        views = [payment_view(record) for record in records]
        if registration.is_administrative:
            views.append(self._administrative_view(registration, mixed=bool(records)))
        return sorted(views, key=view_sort_key)

    @staticmethod
    def _administrative_view(registration: Registration, *, mixed: bool) -> PaymentView:
        exempt = registration.payment_status == PaymentStatus.EXEMPT
        created = registration.created_at or datetime.now(timezone.utc)
        return PaymentView(
            id=f"admin_{registration.id}",
            registration_id=registration.id,
            billing_type="ADMIN_EXEMPT" if exempt else "ADMIN_DIRECT",
            value=registration.amount,
            due_date=created.date().isoformat(),
            status="EXEMPT" if exempt else "DIRECT_PAYMENT",
            installment_number=0 if mixed else 1,
            installment_count=1,
        )

    async def sync_payment_status_from_asaas(self, registration_id: str) -> list[PaymentView]:
        registration = await self.repos.registrations.find(registration_id)
        if registration is None:
            raise NotFoundError("registration not found")

        records = await self.repos.payments.find_many(registration_id=registration_id)
        plan_ids = sorted(
            {
                r.external_installment_plan_id
                for r in records
                if r.external_installment_plan_id and r.billing_type == BillingType.PIX.value
            }
        )
        for plan_id in plan_ids:
            await self._sync_plan(registration_id, plan_id, records)
        for record in records:
            if record.external_installment_plan_id in plan_ids:
                continue
            await self._sync_record(record)

        await self.reconciler.reconcile(registration_id)
        current = await self.repos.registrations.find(registration_id)
        if current is None:
            return []
        return await self._views_for(current)

    async def _sync_record(self, record: PaymentRecord) -> None:
        try:
            payment = await self.gateway.get_payment(record.external_payment_id)
        except GatewayError as exc:
            self.logger.warning(
                "payment sync failed",
                extra={
                    "registration_id": record.registration_id,
                    "external_payment_id": record.external_payment_id,
                    "error_code": exc.code,
                    "error": exc.message,
                },
            )
            return
        await self._apply_drift(record, payment)

    async def _apply_drift(self, record: PaymentRecord, payment: GatewayPayment) -> None:
        if not payment.status or payment.status == record.status:
            return
        await self.repos.payments.update(
            record.id,
            merge_gateway_state(
                record,
                status=payment.status,
                payment_date=payment.payment_date,
                client_payment_date=payment.client_payment_date,
                payload=dict(payment.raw),
            ),
        )
        self.logger.info(
            "payment status drift corrected",
            extra={
                "registration_id": record.registration_id,
                "external_payment_id": record.external_payment_id,
                "status": payment.status,
            },
        )

    async def _sync_plan(self, registration_id: str, plan_id: str, records: list[PaymentRecord]) -> None:
        try:
            installments = await self.gateway.list_installment_payments(plan_id)
        except GatewayError as exc:
            self.logger.warning(
                "installment plan sync failed",
                extra={"registration_id": registration_id, "installment_plan_id": plan_id, "error_code": exc.code},
            )
            return
        known = {r.external_payment_id: r for r in records}
        plan_records = [r for r in records if r.external_installment_plan_id == plan_id]
        if installments:
            await materialize_installment_plan(
                self.repos,
                self.gateway,
                registration_id=registration_id,
                plan_id=plan_id,
                customer_id=plan_records[0].external_customer_id if plan_records else None,
                installment_count=len(installments),
                installments=installments,
                fallback_due_date=default_due_date(self.settings),
            )
        for payment in installments:
            record = known.get(payment.id)
            if record is not None:
                await self._apply_drift(record, payment)

    async def handle_payment_callback(self, registration_id: str) -> Registration | None:
        """Card checkout success redirect: pull fresh state and report it."""
        await self.sync_payment_status_from_asaas(registration_id)
        return await self.repos.registrations.find(registration_id)

    # ------------------------------------------------------------------
    # Overdue PIX charges
    # ------------------------------------------------------------------

    async def list_overdue_payments(self, registration_id: str | None = None) -> list[PaymentView]:
        filters: dict = {
            "status": GatewayPaymentStatus.OVERDUE.value,
            "billing_type": BillingType.PIX.value,
        }
        if registration_id:
            filters["registration_id"] = registration_id
        records = await self.repos.payments.find_many(**filters)
        return [payment_view(r) for r in sorted(records, key=lambda r: r.due_date)]

    async def reactivate_overdue_payment(self, payment_id: str, new_due_date: date) -> PaymentView:
        record = await self.repos.payments.find(payment_id)
        if record is None:
            raise NotFoundError("payment not found")
        if record.status != GatewayPaymentStatus.OVERDUE.value:
            raise ValidationError("only overdue charges can be reactivated")
        if record.billing_type != BillingType.PIX.value:
            raise ValidationError("only PIX charges can be reactivated")

        try:
            await self.gateway.get_payment(record.external_payment_id)
        except GatewaySemanticError as exc:
            if exc.http_status != 404:
                raise
            await self.repos.payments.update(
                record.id,
                {
                    "status": GatewayPaymentStatus.REFUNDED.value,
                    "raw_response": {
                        **(record.raw_response or {}),
                        "deleted": True,
                        "status": GatewayPaymentStatus.REFUNDED.value,
                    },
                },
            )
            await self.reconciler.reconcile(record.registration_id)
            raise ValidationError(
                "this charge no longer exists at the payment gateway and cannot be reactivated",
                code="payment_not_found",
            ) from exc

        due_date = new_due_date.isoformat()
        updated = await self.gateway.update_payment_due_date(record.external_payment_id, due_date)
        qr_code = await self.gateway.get_pix_qr_code(record.external_payment_id)
        stored = await self.repos.payments.update(
            record.id,
            {
                "due_date": updated.due_date or due_date,
                "status": updated.status or record.status,
                "pix_qr_code": qr_code.encoded_image,
                "pix_copy_paste": qr_code.payload,
                "raw_response": dict(updated.raw),
            },
        )
        await self.reconciler.reconcile(record.registration_id)
        self.logger.info(
            "overdue payment reactivated",
            extra={"payment_id": record.id, "external_payment_id": record.external_payment_id, "status": updated.status},
        )
        return payment_view(stored or record)
