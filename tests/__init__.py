"""
Tests Package - Unit and integration tests for StudySync.
=========================================================

Test modules:
- test_ingestion: Extractor, crawler, chunker, LMS client, walker tests
- test_indexing: Embedding providers, hash ledger, chunk and material store tests
- test_rag: Retriever, context, web search and fallback tier tests
- test_sync: Sync state machine, progress store and runner tests
- test_shared: Settings and utility tests
- test_cli: Command-line smoke tests

Run tests with:
    pytest tests/
    pytest tests/ -v -m "not slow"
"""
