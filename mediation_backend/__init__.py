"""
Mediation Backend - Dispute Mediation Case Management
=====================================================

A FastAPI service for:
1. Registering disputes and moving them through the mediation lifecycle
2. Collecting opposite-party consent through signed, single-use links
3. Nominating witnesses and forming three-member mediation panels
"""

__version__ = "1.0.0"
