# Part-time Pal - AI-assisted part-time job search for students
# Version 0.1.0

"""
Part-time Pal helps students find part-time jobs and check postings for scams.

Layers:
1. Core - settings, schemas, errors, LLM provider client, text cleaning
2. Services - input normalizer, analysis calls, job search, orchestrator,
   session state machine, presenter
3. API - FastAPI session endpoints
"""

__version__ = "0.1.0"
