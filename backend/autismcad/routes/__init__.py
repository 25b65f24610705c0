"""
AutismCad Backend — API Routes Package
=======================================

Route Inventory:
    - auth.py:        /api/auth/login, /api/auth/logout, /api/me/permissions, /api/access-logs
    - users.py:       /api/users, /api/permissions, /api/roles
    - pacientes.py:   /api/pacientes (+ arquivos presign/commit/read-url)
    - arquivos.py:    /api/arquivos/{token} (signed upload/download)
    - terapeutas.py:  /api/terapeutas
    - atendimentos.py:/api/atendimentos (+ recorrente, excluir-dia)
    - anamnese.py:    /api/anamnese
    - prontuario.py:  /api/prontuario
    - relatorios.py:  /api/relatorios (JSON and PDF)
    - cep.py:         /api/cep/{cep}
    - health.py:      /health, /api/health, /api/health/storage

Routes stay thin: parse input, apply the guard, call the service.
"""
