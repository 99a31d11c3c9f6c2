"""HTTP surface for the dashboard UI.

Routes are thin: they validate the request shape, dispatch on ``action``
and serialize the service result. Expected domain failures come back as
``{"success": false, ...}`` payloads.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from aguia_dashboard.business_days import BusinessCalendar
from aguia_dashboard.clients.supabase import SupabaseClient
from aguia_dashboard.config import (
    Settings,
    configure_logging,
    get_settings,
    is_conciliacao_enabled,
)
from aguia_dashboard.daily_workers import DailyWorkerService
from aguia_dashboard.dates import parse_date, today, utc_now_iso
from aguia_dashboard.errors import (
    AlreadyPaidError,
    AlreadyReconciledError,
    DashboardError,
    NotFoundError,
    ValidationError,
)
from aguia_dashboard.fixed_costs import FixedCostService
from aguia_dashboard.models import Direction, TransactionDraft, TransactionKind, to_decimal
from aguia_dashboard.reconciliation import ReconciliationEngine
from aguia_dashboard.repository import (
    ATTENDANCE,
    DAILY_WORKERS,
    FIXED_COSTS,
    HOLIDAYS,
    STATEMENT_LINES,
    TRANSACTIONS,
    Repository,
    StoreClient,
)
from aguia_dashboard.statements import StatementService
from aguia_dashboard.transactions import TransactionService

logger = structlog.get_logger(__name__)

ERROR_STATUS = {
    NotFoundError: 404,
    ValidationError: 400,
    AlreadyPaidError: 409,
    AlreadyReconciledError: 409,
}


@dataclass
class ServiceContainer:
    """Services wired to one store client."""

    client: StoreClient
    calendar: BusinessCalendar
    transactions: TransactionService
    statements: StatementService
    reconciliation: ReconciliationEngine
    fixed_costs: FixedCostService
    daily_workers: DailyWorkerService

    @classmethod
    def from_client(
        cls, client: StoreClient, settings: Settings | None = None
    ) -> "ServiceContainer":
        settings = settings or get_settings()
        lines = Repository(client, STATEMENT_LINES)
        calendar = BusinessCalendar(
            Repository(client, HOLIDAYS),
            ttl_seconds=settings.holiday_cache_ttl_seconds,
        )
        transactions = TransactionService(Repository(client, TRANSACTIONS), lines)
        reconciliation = ReconciliationEngine(lines, transactions)
        return cls(
            client=client,
            calendar=calendar,
            transactions=transactions,
            statements=StatementService(lines),
            reconciliation=reconciliation,
            fixed_costs=FixedCostService(
                Repository(client, FIXED_COSTS),
                lines,
                transactions,
                reconciliation,
                calendar,
                payment_direction=Direction(settings.payment_date_direction),
                due_direction=Direction(settings.due_date_direction),
            ),
            daily_workers=DailyWorkerService(
                Repository(client, DAILY_WORKERS, soft_delete=False),
                Repository(client, ATTENDANCE, soft_delete=False),
            ),
        )


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


# === Request bodies ===


class ReconciliationRequest(BaseModel):
    action: str
    extratoId: str | None = None
    transacaoId: str | None = None
    tipo: TransactionKind | None = None
    categoria: str | None = None
    conta: str | None = None
    deleteTransacao: bool = False
    contaId: str | None = None


class StatementImportRequest(BaseModel):
    linhas: list[dict[str, Any]] | None = None
    source: str | None = None


class TransactionRequest(BaseModel):
    data: str
    descricao: str
    valor: float
    tipo: TransactionKind
    forma_pagamento: str | None = None
    categoria: str | None = None
    conta: str | None = None


class FixedCostRequest(BaseModel):
    action: str
    custoFixoId: str | None = None
    dataPagamento: str | None = None
    conta_pagamento: str | None = None
    tipo_pagamento: str | None = None
    competencia: str | None = None


class DailyWorkerRequest(BaseModel):
    action: str
    diaristaId: str | None = None
    datasTrabalho: list[str] | None = None
    valorSemana: float | str | None = None
    valorFimSemana: float | str | None = None
    data: str | None = None
    presente: bool = True


class HolidayRequest(BaseModel):
    action: str | None = None
    data: str | None = None
    nome: str | None = None
    tipo: str = "municipal"
    observacao: str | None = None
    recorrente: bool = False
    ano: int | None = None


# === Helpers ===


def bad_request(error: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": error})


def feature_disabled() -> JSONResponse:
    return JSONResponse(
        status_code=403,
        content={"success": False, "error": "Conciliação bancária desabilitada"},
    )


def parse_flag(value: str | None) -> bool | None:
    if value == "true":
        return True
    if value == "false":
        return False
    return None


def optional_date(value: str | None) -> date | None:
    return parse_date(value) if value else None


def result_response(result: Any) -> JSONResponse:
    payload = result.to_dict()
    return JSONResponse(status_code=200 if result.success else 400, content=payload)


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    """Build the application; without ``services`` they are wired from settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned_client = None
        if app.state.services is None:
            configure_logging()
            owned_client = SupabaseClient()
            app.state.services = ServiceContainer.from_client(owned_client)
        yield
        if owned_client is not None:
            await owned_client.close()

    app = FastAPI(title="Dashboard Águia", lifespan=lifespan)
    app.state.services = services

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = sorted(
            {".".join(str(p) for p in err["loc"][1:]) or "corpo" for err in exc.errors()}
        )
        return bad_request(f"Campos obrigatórios ausentes ou inválidos: {', '.join(fields)}")

    @app.exception_handler(DashboardError)
    async def dashboard_error_handler(request: Request, exc: DashboardError):
        status = next(
            (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500
        )
        if status >= 500:
            logger.error("request_failed", path=request.url.path, error=exc.message)
        return JSONResponse(
            status_code=status,
            content={"success": False, "error": exc.code, "message": exc.message},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("unexpected_error", path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Erro interno", "message": str(exc)},
        )

    @app.get("/health")
    async def health() -> dict:
        settings = get_settings()
        return {
            "status": "ok",
            "timestamp": utc_now_iso(),
            "supabase": {
                "url": settings.supabase_url,
                "hasKey": bool(settings.supabase_key.get_secret_value()),
            },
        }

    # === Reconciliation ===

    @app.post("/reconciliation")
    async def reconcile(
        body: ReconciliationRequest, services: ServiceContainer = Depends(get_services)
    ):
        if not is_conciliacao_enabled():
            return feature_disabled()
        engine = services.reconciliation

        if body.action == "link":
            if not body.extratoId or not body.transacaoId:
                return bad_request("extratoId e transacaoId são obrigatórios")
            result = await engine.link(body.extratoId, body.transacaoId)
        elif body.action == "create":
            if not body.extratoId or not body.tipo:
                return bad_request("extratoId e tipo são obrigatórios")
            result = await engine.create_and_link(
                body.extratoId, body.tipo, body.categoria, body.conta or "banco"
            )
        elif body.action == "unlink":
            if not body.extratoId:
                return bad_request("extratoId é obrigatório")
            result = await engine.unlink(body.extratoId, body.deleteTransacao)
        elif body.action == "auto":
            if not body.extratoId:
                return bad_request("extratoId é obrigatório")
            result = await engine.auto_match(body.extratoId, body.contaId)
        else:
            return bad_request("Ação inválida")
        return result.to_dict()

    # === Statement lines ===

    @app.get("/statement-lines")
    async def list_statement_lines(
        action: str | None = None,
        conta_id: str | None = None,
        dataInicio: str | None = None,
        dataFim: str | None = None,
        conciliado: str | None = None,
        services: ServiceContainer = Depends(get_services),
    ):
        if not is_conciliacao_enabled():
            return feature_disabled()
        if action == "status":
            status = await services.statements.reconciliation_status(conta_id)
            return status.to_dict()
        lines = await services.statements.list_active_lines(
            account_id=conta_id,
            start=optional_date(dataInicio),
            end=optional_date(dataFim),
            reconciled=parse_flag(conciliado),
        )
        return {"success": True, "data": [line.to_dict() for line in lines], "total": len(lines)}

    @app.post("/statement-lines")
    async def import_statement_lines(
        body: StatementImportRequest, services: ServiceContainer = Depends(get_services)
    ):
        if not is_conciliacao_enabled():
            return feature_disabled()
        if body.linhas is None:
            return bad_request("Linhas de extrato inválidas")
        result = await services.statements.import_lines(
            body.linhas, body.source or "manual_upload"
        )
        return result.to_dict(services.statements.import_message(result))

    @app.delete("/statement-lines")
    async def delete_statement_line(
        id: str | None = None, services: ServiceContainer = Depends(get_services)
    ):
        if not is_conciliacao_enabled():
            return feature_disabled()
        if not id:
            return bad_request("ID não fornecido")
        return result_response(await services.statements.soft_delete_line(id))

    # === Transactions ===

    @app.get("/transactions")
    async def list_transactions(
        action: str | None = None,
        dataInicio: str | None = None,
        dataFim: str | None = None,
        tipo: TransactionKind | None = None,
        conta: str | None = None,
        categoria: str | None = None,
        services: ServiceContainer = Depends(get_services),
    ):
        start, end = optional_date(dataInicio), optional_date(dataFim)
        if action == "kpis":
            kpis = await services.transactions.kpis(start, end)
            return kpis.to_dict()
        transactions = await services.transactions.list_active(
            start=start, end=end, kind=tipo, account=conta, category=categoria
        )
        return {
            "success": True,
            "data": [tx.to_dict() for tx in transactions],
            "total": len(transactions),
        }

    @app.post("/transactions")
    async def create_transaction(
        body: TransactionRequest, services: ServiceContainer = Depends(get_services)
    ):
        amount = to_decimal(body.valor)
        if amount is None or amount <= 0:
            return bad_request("Valor deve ser positivo")
        transaction = await services.transactions.create(
            TransactionDraft(
                date=parse_date(body.data),
                description=body.descricao,
                amount=amount,
                kind=body.tipo,
                payment_method=body.forma_pagamento,
                category=body.categoria,
                account=body.conta,
            )
        )
        return {
            "success": True,
            "message": "Transação criada com sucesso",
            "data": transaction.to_dict(),
        }

    @app.delete("/transactions")
    async def delete_transaction(
        id: str | None = None, services: ServiceContainer = Depends(get_services)
    ):
        if not id:
            return bad_request("ID não fornecido")
        return result_response(await services.transactions.soft_delete(id))

    # === Fixed costs ===

    @app.get("/fixed-costs")
    async def list_fixed_costs(
        action: str | None = None,
        categoria: str | None = None,
        pago: str | None = None,
        competencia: str | None = None,
        ativo: str | None = None,
        services: ServiceContainer = Depends(get_services),
    ):
        if action == "totais":
            totals = await services.fixed_costs.totals(competencia, categoria)
            return totals.to_dict()
        costs = await services.fixed_costs.list_active(
            category=categoria,
            paid=parse_flag(pago),
            period=competencia,
            active=parse_flag(ativo),
        )
        return {"success": True, "data": [c.to_dict() for c in costs], "total": len(costs)}

    @app.post("/fixed-costs")
    async def fixed_cost_action(
        body: FixedCostRequest, services: ServiceContainer = Depends(get_services)
    ):
        if body.action == "pagar":
            if not body.custoFixoId:
                return bad_request("custoFixoId é obrigatório")
            result = await services.fixed_costs.mark_paid(
                body.custoFixoId,
                body.dataPagamento,
                body.conta_pagamento or "banco",
                body.tipo_pagamento or "transferencia",
            )
            return result.to_dict()
        if body.action == "gerar":
            if not body.competencia:
                return bad_request("competencia é obrigatória")
            result = await services.fixed_costs.generate_for_period(body.competencia)
            message = f"{result.imported_count} custos fixos gerados para {body.competencia}"
            return {**result.to_dict(message), "gerados": result.imported_count}
        return bad_request("Ação inválida")

    # === Daily workers ===

    @app.get("/daily-workers")
    async def daily_workers(
        action: str | None = None,
        dataInicio: str | None = None,
        dataFim: str | None = None,
        services: ServiceContainer = Depends(get_services),
    ):
        if action in ("calcular-periodo", "totais-periodo"):
            if not dataInicio or not dataFim:
                return bad_request("dataInicio e dataFim são obrigatórios")
            if action == "calcular-periodo":
                payments = await services.daily_workers.calculate_for_period(
                    dataInicio, dataFim
                )
                return {"success": True, "data": [p.to_dict() for p in payments]}
            totals = await services.daily_workers.period_totals(dataInicio, dataFim)
            return {"success": True, "data": totals.to_dict()}

        workers = await services.daily_workers.list_active_workers()
        return {"success": True, "data": [w.to_dict() for w in workers], "total": len(workers)}

    @app.post("/daily-workers")
    async def daily_worker_action(
        body: DailyWorkerRequest, services: ServiceContainer = Depends(get_services)
    ):
        service = services.daily_workers
        if body.action == "calcular":
            if not body.diaristaId or body.datasTrabalho is None:
                return bad_request("diaristaId e datasTrabalho são obrigatórios")
            payment = await service.calculate_for_worker(body.diaristaId, body.datasTrabalho)
            return {"success": True, "data": payment.to_dict()}
        if body.action == "update-rates":
            if not body.diaristaId or body.valorSemana is None or body.valorFimSemana is None:
                return bad_request("diaristaId, valorSemana e valorFimSemana são obrigatórios")
            await service.update_rates(body.diaristaId, body.valorSemana, body.valorFimSemana)
            return {"success": True, "message": "Valores atualizados com sucesso"}
        if body.action == "ponto":
            if not body.diaristaId or not body.data:
                return bad_request("diaristaId e data são obrigatórios")
            row = await service.mark_attendance(body.diaristaId, body.data, body.presente)
            return {"success": True, "message": "Presença registrada", "data": row}
        return bad_request("Ação inválida")

    # === Holidays ===

    @app.get("/holidays")
    async def list_holidays(
        inicio: str | None = None,
        fim: str | None = None,
        services: ServiceContainer = Depends(get_services),
    ):
        year = today().year
        start = optional_date(inicio) or date(year, 1, 1)
        end = optional_date(fim) or date(year, 12, 31)
        holidays = await services.calendar.list_holidays(start, end)
        return {"success": True, "data": [h.to_dict() for h in holidays], "total": len(holidays)}

    @app.post("/holidays")
    async def holiday_action(
        body: HolidayRequest, services: ServiceContainer = Depends(get_services)
    ):
        if body.action == "seed":
            year = body.ano or today().year
            result = await services.calendar.seed_national_holidays(year)
            return result.to_dict(
                f"{result.imported_count} feriados nacionais cadastrados para {year}"
            )
        if not body.data or not body.nome:
            return bad_request("data e nome são obrigatórios")
        holiday = await services.calendar.add_holiday(
            body.data, body.nome, body.tipo, body.observacao, body.recorrente
        )
        return {"success": True, "message": "Feriado cadastrado", "data": holiday.to_dict()}

    @app.delete("/holidays")
    async def delete_holiday(
        id: str | None = None, services: ServiceContainer = Depends(get_services)
    ):
        if not id:
            return bad_request("ID não fornecido")
        return result_response(await services.calendar.remove_holiday(id))

    return app
