"""
AutismCad Backend — Report PDF Rendering
=========================================

What:  Renders the clinico and evolutivo reports (as returned by
       relatorio_service) into A4 PDFs with fpdf2.
How:   Built-in Helvetica only, so no font files ship with the app. Core fonts
       are Latin-1; anything outside it is replaced before drawing.
"""

from datetime import datetime
from typing import Any, Dict

from fpdf import FPDF, XPos, YPos

CLINIC_NAME = "Clinica Girassois"
MAX_SESSION_ROWS = 40

_NL = {"new_x": XPos.LMARGIN, "new_y": YPos.NEXT}


def _latin1(text: Any) -> str:
    return str(text if text is not None else "").encode("latin-1", "replace").decode("latin-1")


class _ReportPDF(FPDF):
    def __init__(self, title: str):
        super().__init__(orientation="P", unit="mm", format="A4")
        self.report_title = title
        self.set_margins(14, 14, 14)
        self.set_auto_page_break(auto=True, margin=14)
        self.add_page()

    def header(self):
        if self.page_no() > 1:
            return
        self.set_font("Helvetica", "B", 18)
        self.set_text_color(107, 69, 36)
        self.cell(0, 9, CLINIC_NAME, **_NL)
        self.set_text_color(30, 30, 30)
        self.set_font("Helvetica", "B", 14)
        self.cell(0, 7, self.report_title, **_NL)
        self.set_font("Helvetica", "", 10)
        self.cell(0, 6, f"Emitido em {datetime.now().strftime('%d/%m/%Y %H:%M')}", **_NL)
        self.ln(3)

    def section(self, title: str):
        self.ln(2)
        self.set_font("Helvetica", "B", 13)
        self.cell(0, 7, _latin1(title), **_NL)

    def text_line(self, text: Any, size: int = 11, bold: bool = False):
        self.set_font("Helvetica", "B" if bold else "", size)
        self.multi_cell(0, size * 0.5 + 1, _latin1(text), **_NL)

    def paciente_block(self, report: Dict[str, Any]):
        paciente = report.get("paciente") or {}
        periodo = report.get("periodo") or {}
        self.text_line(f"Paciente: {paciente.get('nome', '')} (ID {paciente.get('id', '')})", bold=True)
        self.text_line(f"CPF: {paciente.get('cpf') or '-'}   Convenio: {paciente.get('convenio') or 'Particular'}")
        self.text_line(f"Periodo: {periodo.get('from', '')} a {periodo.get('to', '')}")


def build_clinico_pdf(report: Dict[str, Any]) -> bytes:
    pdf = _ReportPDF("RELATORIO CLINICO")
    pdf.paciente_block(report)

    atend = report.get("atendimentos") or {}
    pdf.section("Atendimentos")
    pdf.text_line(
        f"Total: {atend.get('total', 0)}  Presencas: {atend.get('presentes', 0)}  "
        f"Faltas: {atend.get('ausentes', 0)}  Taxa: {atend.get('taxaPresenca', 0)}%"
    )

    pdf.section("Anamnese")
    anamnese = report.get("anamnese")
    if anamnese:
        pdf.text_line(
            f"Versao {anamnese.get('version')} - {anamnese.get('status') or ''} - {anamnese.get('created_at') or ''}"
        )
    else:
        pdf.text_line("Sem anamnese encontrada")

    pdf.section("Observacoes recentes")
    observacoes = atend.get("observacoes") or []
    if not observacoes:
        pdf.text_line("- Sem observacoes")
    for o in observacoes:
        texto = (o.get("observacoes") or o.get("motivo") or "-").strip()
        pdf.text_line(f"{o.get('data')} {o.get('hora_inicio')} - {o.get('presenca')} - {texto}", size=10)

    return bytes(pdf.output())


def build_evolutivo_pdf(report: Dict[str, Any]) -> bytes:
    pdf = _ReportPDF("RELATORIO EVOLUTIVO")
    pdf.paciente_block(report)

    i = report.get("indicadores") or {}
    pdf.section("Indicadores")
    pdf.text_line(
        f"Total: {i.get('totalAtendimentos', 0)}  Presencas: {i.get('presentes', 0)}  "
        f"Ausencias: {i.get('ausentes', 0)}  Sem registro: {i.get('naoInformado', 0)}"
    )
    pdf.text_line(
        f"Taxa de presenca: {i.get('taxaPresencaPercent', 0)}%  "
        f"Tempo total (min): {i.get('tempoTotalMinutos', 0)}  Media (min): {i.get('mediaMinutosPorSessao', 0)}"
    )

    resumo = report.get("resumoAutomatico") or {}
    pdf.section("Resumo automatico")
    for paragraph in (str(resumo.get("texto") or "").strip() or "-").split("\n"):
        pdf.text_line(paragraph)
    pdf.text_line(f"Regras: {', '.join(resumo.get('regrasDisparadas') or []) or '-'}", size=10)

    destaques = report.get("destaques") or {}
    pdf.section("Ultimas observacoes")
    observacoes = destaques.get("ultimasObservacoes") or []
    if not observacoes:
        pdf.text_line("- Sem observacoes registradas.")
    for o in observacoes:
        pdf.text_line(f"- {o.get('data')} - {o.get('terapeuta_nome') or 'Terapeuta'}: {o.get('texto') or ''}")

    pdf.section("Principais motivos de ausencia")
    motivos = destaques.get("principaisMotivosAusencia") or []
    if not motivos:
        pdf.text_line("- Sem faltas registradas.")
    for m in motivos:
        pdf.text_line(f"- {m.get('motivo')} ({m.get('count')})")

    pdf.section("Atendimentos (resumo)")
    sessions = report.get("atendimentos") or []
    if not sessions:
        pdf.text_line("- Nenhum atendimento no periodo.")
    for a in sessions[:MAX_SESSION_ROWS]:
        obs = (a.get("observacoes") or a.get("resumo_repasse") or a.get("motivo") or "").strip()
        pdf.text_line(
            f"{a.get('data')} | {(a.get('terapeuta_nome') or 'Terapeuta').strip()} | "
            f"{a.get('presenca')} | {a.get('duracao_min') or 0} min | {obs}",
            size=9,
        )
    if len(sessions) > MAX_SESSION_ROWS:
        pdf.text_line(f"(Mostrando {MAX_SESSION_ROWS} de {len(sessions)} atendimentos)", size=9)

    return bytes(pdf.output())
