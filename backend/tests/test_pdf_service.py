"""Smoke tests for the report PDFs: valid documents, including empty reports and non-Latin-1 text."""

from autismcad.services.pdf_service import MAX_SESSION_ROWS, build_clinico_pdf, build_evolutivo_pdf

PACIENTE = {"id": 3, "nome": "João Pereira", "cpf": "12345678901", "convenio": "Unimed"}
PERIODO = {"from": "2024-03-01", "to": "2024-03-31"}


class TestReportPdf:
    def test_clinico(self):
        report = {
            "paciente": PACIENTE,
            "periodo": PERIODO,
            "atendimentos": {
                "total": 2,
                "presentes": 1,
                "ausentes": 1,
                "taxaPresenca": 50,
                "observacoes": [
                    {"data": "2024-03-04", "hora_inicio": "08:00", "presenca": "Ausente", "motivo": "Febre ☀"},
                ],
            },
            "anamnese": {"version": 2, "status": "Finalizada", "created_at": "2024-02-10"},
        }

        content = build_clinico_pdf(report)

        assert content.startswith(b"%PDF")
        assert content.rstrip().endswith(b"%%EOF")

    def test_clinico_empty(self):
        assert build_clinico_pdf({}).startswith(b"%PDF")

    def test_evolutivo_many_sessions(self):
        sessions = [
            {
                "data": f"2024-03-{(n % 28) + 1:02d}",
                "terapeuta_nome": "Ana",
                "presenca": "Presente",
                "duracao_min": 50,
                "observacoes": "Sessao com boa participacao " * 5,
            }
            for n in range(MAX_SESSION_ROWS + 5)
        ]
        report = {
            "paciente": PACIENTE,
            "periodo": PERIODO,
            "indicadores": {"totalAtendimentos": len(sessions), "presentes": len(sessions)},
            "resumoAutomatico": {"texto": "linha 1\nlinha 2\nlinha 3", "regrasDisparadas": ["ADESAO_BOA"]},
            "destaques": {
                "ultimasObservacoes": [{"data": "2024-03-04", "terapeuta_nome": "Ana", "texto": "Ok"}],
                "principaisMotivosAusencia": [{"motivo": "Viagem", "count": 2}],
            },
            "atendimentos": sessions,
        }

        content = build_evolutivo_pdf(report)

        assert content.startswith(b"%PDF")
        assert len(content) > 1000

    def test_evolutivo_empty(self):
        assert build_evolutivo_pdf({}).startswith(b"%PDF")
