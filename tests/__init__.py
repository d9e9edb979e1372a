"""
tests/
------
Clinical Trial Screener - Test Package
--------------------------------------
Test suites for the eligibility relay and its exporters.

Test Modules:
    - test_config.py: Timeout budget and environment settings
    - test_response_normalizer.py: Langflow result extraction
    - test_langflow_client.py: Upstream client against a mock Langflow
    - test_text_sanitizer.py: Display and export text cleanup
    - test_fhir_mapper.py: FHIR R4 eligibility bundle
    - test_report_renderer.py: HTML / PDF eligibility report
    - test_main.py: FastAPI endpoints
    - test_screener_client.py: Relay caller

Project: Clinical Trial Screener
"""
