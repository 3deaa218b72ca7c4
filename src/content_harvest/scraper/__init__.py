"""Domain-agnostic scraping toolkit.

Sub-modules:
- ``config``            : constants (user agents, blocked resource types)
- ``browser``           : Playwright session with scoped acquisition
- ``urls``              : URL normalisation, domains, hashing, user agents
- ``robots``            : robots.txt parsing and matching
- ``domain_policy``     : per-domain robots cache and request spacing
- ``structured_data``   : JSON-LD / microdata / Open Graph and page metadata
- ``content_extractor`` : trafilatura-based readable text extraction
- ``http_fetcher``      : httpx fetchers for robots.txt and binary assets
- ``dom``               : BeautifulSoup helpers
- ``files``             : file naming and age-based cleanup
"""
