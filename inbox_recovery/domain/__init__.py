"""
Domain Layer - Error Model

This layer contains:
- Error taxonomy: severities, categories and recovery strategies
- Error records and the factory that classifies them
- User-facing error wording

No external dependencies allowed in this layer.
"""
