# backend/pigen/renderer.py
"""
Default contract renderer: contract data -> filled spreadsheet -> PDF.

The job manager only needs something with
``render(subject_id, tenant_id, requester, options) -> bytes``; this module
provides the implementation the service ships with. Contract data comes
from a ContractSource, the workbook is filled with openpyxl and converted
by headless LibreOffice.
"""
import json
import logging
import os
import re
import subprocess
import tempfile
from typing import Any, Dict, Optional, Protocol

from openpyxl import Workbook, load_workbook
from openpyxl.worksheet.worksheet import Worksheet

from .convert_utils import build_soffice_command, expected_output, run_cmd
from .exceptions import RenderFailure

logger = logging.getLogger(__name__)

DEFAULT_REQUESTER = {"nome": "Atendimento"}

_PLACEHOLDER = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")
_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


class Renderer(Protocol):
    def render(self, subject_id: str, tenant_id: Optional[str], requester: Optional[dict],
               options: Dict[str, Any]) -> bytes:
        ...


class ContractSource(Protocol):
    def load(self, subject_id: str, tenant_id: Optional[str]) -> Optional[dict]:
        ...


def _ref_id(value) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("_id") or value.get("id")
    return str(value) if value is not None else None


class JsonContractSource:
    """Reads <contracts_dir>/<subject_id>.json, scoped by the contract's empresa."""

    def __init__(self, contracts_dir: str):
        self.contracts_dir = contracts_dir

    def load(self, subject_id: str, tenant_id: Optional[str]) -> Optional[dict]:
        if not _SAFE_ID.match(subject_id or ""):
            return None
        path = os.path.join(self.contracts_dir, f"{subject_id}.json")
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            contrato = json.load(f)
        if tenant_id and _ref_id(contrato.get("empresa")) != str(tenant_id):
            return None
        return contrato


def lookup(context: dict, dotted: str):
    cur: Any = context
    for part in dotted.split("."):
        if isinstance(cur, dict):
            cur = cur.get(part)
        else:
            return None
        if cur is None:
            return None
    return cur


def fill_placeholders(ws: Worksheet, context: dict) -> int:
    """
    Replace {{a.b}} placeholders in every string cell. A cell that is only a
    placeholder takes the raw value (numbers stay numbers); otherwise the
    value is interpolated as text. Returns the number of cells changed.
    """
    def as_text(match):
        value = lookup(context, match.group(1))
        return "" if value is None else str(value)

    changed = 0
    for row in ws.iter_rows():
        for cell in row:
            if not isinstance(cell.value, str) or "{{" not in cell.value:
                continue
            text = cell.value
            whole = _PLACEHOLDER.fullmatch(text.strip())
            if whole:
                value = lookup(context, whole.group(1))
                cell.value = "" if value is None else value
            else:
                cell.value = _PLACEHOLDER.sub(as_text, text)
            changed += 1
    return changed


def build_summary_sheet(ws: Worksheet, context: dict):
    pi = context.get("pi") or {}
    cliente = context.get("cliente") or {}
    empresa = context.get("empresa") or {}
    user = context.get("user") or {}

    ws.title = "Contrato"
    ws.append(["Contrato", context.get("contrato", {}).get("_id")])
    ws.append(["Empresa", empresa.get("nome")])
    ws.append(["Cliente", cliente.get("nome")])
    ws.append(["CNPJ/CPF", cliente.get("cnpj") or cliente.get("cpf")])
    ws.append(["PI", pi.get("pi_code")])
    ws.append(["Período", f"{pi.get('dataInicio') or ''} a {pi.get('dataFim') or ''}"])
    ws.append(["Valor total", pi.get("valorTotal")])
    ws.append(["Atendimento", user.get("nome")])

    placas = pi.get("placas") or []
    if placas:
        ws.append([])
        ws.append(["Placa", "Região"])
        for placa in placas:
            if isinstance(placa, dict):
                ws.append([placa.get("numero_placa"), lookup(placa, "regiao.nome")])
            else:
                ws.append([str(placa), None])


class SpreadsheetPdfRenderer:
    def __init__(self, contracts: ContractSource, template_path: Optional[str] = None,
                 soffice_bin: str = "soffice", timeout_ms: int = 60000):
        self.contracts = contracts
        self.template_path = template_path
        self.soffice_bin = soffice_bin
        self.timeout_ms = timeout_ms

    def build_context(self, contrato: dict, requester: Optional[dict]) -> dict:
        pi = contrato.get("pi") if isinstance(contrato.get("pi"), dict) else {}
        cliente = pi.get("cliente") if isinstance(pi.get("cliente"), dict) else {}
        empresa = contrato.get("empresa") if isinstance(contrato.get("empresa"), dict) else {}
        return {
            "contrato": contrato,
            "pi": pi,
            "cliente": cliente,
            "empresa": empresa,
            "user": requester or DEFAULT_REQUESTER,
        }

    def build_workbook(self, context: dict) -> Workbook:
        if self.template_path:
            wb = load_workbook(self.template_path)
            for ws in wb.worksheets:
                fill_placeholders(ws, context)
        else:
            wb = Workbook()
            build_summary_sheet(wb.active, context)
        return wb

    def render(self, subject_id: str, tenant_id: Optional[str], requester: Optional[dict],
               options: Dict[str, Any]) -> bytes:
        contrato = self.contracts.load(subject_id, tenant_id)
        if not contrato:
            raise RenderFailure("Contrato não encontrado", subject_id=subject_id)

        wb = self.build_workbook(self.build_context(contrato, requester))
        timeout_ms = (options or {}).get("timeoutMs", self.timeout_ms)

        with tempfile.TemporaryDirectory(prefix="pigen-") as workdir:
            xlsx_path = os.path.join(workdir, f"contrato_{subject_id}.xlsx")
            wb.save(xlsx_path)
            return self.convert_to_pdf(xlsx_path, workdir, timeout_ms)

    def convert_to_pdf(self, xlsx_path: str, workdir: str, timeout_ms: int) -> bytes:
        cmd = build_soffice_command(xlsx_path, workdir, self.soffice_bin)
        try:
            code, _, stderr = run_cmd(cmd, timeout=timeout_ms / 1000.0)
        except subprocess.TimeoutExpired as e:
            raise RenderFailure(f"Timeout ao converter Excel para PDF após {timeout_ms}ms") from e
        except FileNotFoundError as e:
            raise RenderFailure(f"converter not available: {self.soffice_bin}") from e

        if code != 0:
            raise RenderFailure(f"conversion failed ({code}): {stderr.strip()[:500]}")

        pdf_path = expected_output(xlsx_path, workdir)
        if not os.path.exists(pdf_path):
            raise RenderFailure("conversion produced no PDF")
        with open(pdf_path, "rb") as f:
            data = f.read()
        logger.debug("converted %s to PDF (%d bytes)", xlsx_path, len(data))
        return data
