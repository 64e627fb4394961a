"""
Tests d'integration pour ChantierPro Auth.

Ces tests traversent toute la pile (TestClient FastAPI, services,
repositories) sur une base SQLite en memoire.

Usage:
    pytest tests/integration/ -m integration
"""
