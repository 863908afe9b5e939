"""
TrustGraph API Package
======================

FastAPI surface over TrustGraphService.

Author: TrustGraph Team
Version: 1.0.0
"""
