"""Tests for the HTTP routes."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from aguia_dashboard.api import create_app
from aguia_dashboard.repository import (
    DAILY_WORKERS,
    FIXED_COSTS,
    HOLIDAYS,
    STATEMENT_LINES,
    TRANSACTIONS,
)


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


def statement_line(**overrides):
    return {
        "conta_id": "itau-01",
        "data": "2024-03-10",
        "historico": "PAGAMENTO FORNECEDOR",
        "valor": -500,
        **overrides,
    }


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["supabase"]["hasKey"] is True


class TestReconciliationRoutes:
    def test_missing_fields(self, client):
        response = client.post("/reconciliation", json={"action": "link", "extratoId": "ln-1"})

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "extratoId e transacaoId são obrigatórios",
        }

    def test_missing_action(self, client):
        response = client.post("/reconciliation", json={"extratoId": "ln-1"})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_unknown_action(self, client):
        response = client.post("/reconciliation", json={"action": "merge"})

        assert response.status_code == 400
        assert response.json()["error"] == "Ação inválida"

    def test_auto_match(self, store, client):
        store.seed(
            STATEMENT_LINES,
            {"id": "ln-1", **statement_line(), "hash_unico": "h", "source": "manual_upload"},
        )
        store.seed(
            TRANSACTIONS,
            {"id": "tx-b", "data": "2024-03-11", "valor": 500, "tipo": "saida"},
            {"id": "tx-a", "data": "2024-03-09", "valor": 500, "tipo": "saida"},
        )

        response = client.post("/reconciliation", json={"action": "auto", "extratoId": "ln-1"})

        assert response.status_code == 200
        assert response.json()["transactionId"] == "tx-a"

    def test_no_match_is_not_an_http_error(self, store, client):
        store.seed(STATEMENT_LINES, {"id": "ln-1", **statement_line(), "hash_unico": "h"})

        response = client.post("/reconciliation", json={"action": "auto", "extratoId": "ln-1"})

        assert response.status_code == 200
        assert response.json()["error"] == "no_match"

    def test_disabled_feature(self, client):
        with patch("aguia_dashboard.api.is_conciliacao_enabled", return_value=False):
            response = client.post(
                "/reconciliation", json={"action": "unlink", "extratoId": "ln-1"}
            )

        assert response.status_code == 403


class TestStatementRoutes:
    def test_import_and_status(self, client):
        lines = [statement_line(), statement_line(data="2024-03-11")]

        first = client.post("/statement-lines", json={"linhas": lines})
        second = client.post("/statement-lines", json={"linhas": lines})
        status = client.get("/statement-lines", params={"action": "status"})

        assert first.json()["imported"] == 2
        assert second.json()["duplicates"] == 2
        assert second.json()["message"].startswith("Importação concluída: 0 linhas")
        assert status.json()["total"] == 2

    def test_import_requires_lines(self, client):
        response = client.post("/statement-lines", json={"source": "manual_upload"})

        assert response.status_code == 400
        assert response.json()["error"] == "Linhas de extrato inválidas"

    def test_list(self, store, client):
        store.seed(STATEMENT_LINES, {"id": "ln-1", **statement_line(), "hash_unico": "h"})

        response = client.get("/statement-lines", params={"conciliado": "false"})

        assert response.json()["total"] == 1
        assert response.json()["data"][0]["valor"] == -500.0

    def test_delete_requires_id(self, client):
        response = client.delete("/statement-lines")

        assert response.status_code == 400
        assert response.json()["error"] == "ID não fornecido"

    def test_delete_rejects_other_sources(self, store, client):
        store.seed(
            STATEMENT_LINES,
            {"id": "ln-1", **statement_line(), "hash_unico": "h", "source": "open_finance"},
        )

        response = client.delete("/statement-lines", params={"id": "ln-1"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_source"


class TestTransactionRoutes:
    def test_create_validates_body(self, client):
        response = client.post("/transactions", json={"data": "2024-06-03", "valor": 10})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_create_list_delete(self, client):
        created = client.post(
            "/transactions",
            json={"data": "2024-06-03", "descricao": "Areia", "valor": 320.5, "tipo": "saida",
                  "conta": "banco"},
        )
        transaction_id = created.json()["data"]["id"]

        listed = client.get("/transactions", params={"tipo": "saida"})
        kpis = client.get("/transactions", params={"action": "kpis"})
        deleted = client.delete("/transactions", params={"id": transaction_id})
        again = client.delete("/transactions", params={"id": transaction_id})

        assert created.json()["success"] is True
        assert listed.json()["total"] == 1
        assert kpis.json()["totalSaidas"] == 320.5
        assert deleted.status_code == 200
        assert again.status_code == 400

    def test_invalid_date_is_bad_request(self, client):
        response = client.get("/transactions", params={"dataInicio": "03/06/2024"})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"


class TestFixedCostRoutes:
    def test_pay(self, store, client):
        store.seed(
            FIXED_COSTS,
            {"id": "cf-1", "nome": "Aluguel", "valor": 1500, "competencia": "2024-06",
             "pago": False},
        )

        response = client.post(
            "/fixed-costs",
            json={"action": "pagar", "custoFixoId": "cf-1", "dataPagamento": "2024-06-08"},
        )

        body = response.json()
        assert body["success"] is True
        assert body["dataAjustada"] == "2024-06-10"
        assert body["transactionId"]

    def test_generate_invalid_period(self, client):
        response = client.post("/fixed-costs", json={"action": "gerar", "competencia": "junho"})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_generate(self, store, client):
        store.seed(
            FIXED_COSTS,
            {"nome": "Internet", "valor": 200, "periodicidade": "mensal", "dia_vencimento": 5,
             "competencia": None, "ativo": True},
        )

        response = client.post("/fixed-costs", json={"action": "gerar", "competencia": "2024-06"})

        assert response.json()["gerados"] == 1
        assert response.json()["message"] == "1 custos fixos gerados para 2024-06"

    def test_totals(self, store, client):
        store.seed(FIXED_COSTS, {"nome": "Aluguel", "valor": 1500, "pago": True,
                                 "competencia": "2024-06"})

        response = client.get("/fixed-costs", params={"action": "totais"})

        assert response.json()["pagos"] == 1500.0


class TestDailyWorkerRoutes:
    def test_period_requires_dates(self, client):
        response = client.get("/daily-workers", params={"action": "calcular-periodo"})

        assert response.status_code == 400

    def test_calculate_unknown_worker(self, client):
        response = client.post(
            "/daily-workers",
            json={"action": "calcular", "diaristaId": "missing", "datasTrabalho": ["2024-06-10"]},
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_calculate(self, store, client):
        store.seed(
            DAILY_WORKERS,
            {"id": "d1", "nome": "João", "valor_diaria_semana": 100,
             "valor_diaria_fimsemana": 150, "ativo": True},
        )

        response = client.post(
            "/daily-workers",
            json={"action": "calcular", "diaristaId": "d1",
                  "datasTrabalho": ["2024-06-08", "2024-06-10"]},
        )

        assert response.json()["data"]["total_geral"] == 250.0


class TestHolidayRoutes:
    def test_add_list_remove(self, store, client):
        created = client.post(
            "/holidays", json={"data": "2024-06-12", "nome": "Aniversário da cidade"}
        )
        listed = client.get("/holidays", params={"inicio": "2024-06-01", "fim": "2024-06-30"})
        holiday_id = store.tables[HOLIDAYS][0]["id"]
        removed = client.delete("/holidays", params={"id": holiday_id})

        assert created.json()["data"]["tipo"] == "municipal"
        assert listed.json()["total"] == 1
        assert removed.json()["success"] is True

    def test_seed(self, client):
        response = client.post("/holidays", json={"action": "seed", "ano": 2025})

        assert response.json()["imported"] == 13
