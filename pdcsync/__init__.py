"""
pdcsync - PDC Data Synchronization Utilities
=============================================

Command-line utilities that move nonprofit data into the PDC
(proposal/grant-management API) from spreadsheets and from two
third-party providers.

Modules:
--------
- config.py            : Settings from .env / environment, logging setup
- errors.py            : Exception types
- http_client.py       : JSON-over-HTTP client (bearer token, API keys)
- models.py            : PDC records with response validation
- pdc_api.py           : One function per PDC endpoint
- loader.py            : Delimited file loading (every value kept as text)
- reconcile.py         : One CSV row -> applicant, proposal, proposal version
- uploader.py          : Runs reconcile.py over a whole file
- oidc.py              : Client-credentials access tokens
- candid.py            : Candid Premier lookups by EIN
- charity_navigator.py : Charity Navigator GraphQL lookups by EIN
- form_schema.py       : Application form JSON from the field mapping CSV
- sql_seed.py          : Base field INSERT statement from a CSV
- ein.py               : EIN validation
- cli.py               : `pdc-sync` entry point

Usage:
------
    pdc-sync post-proposal-versions --input-file data.csv --application-form-id 7 \\
        --applicant-column-name "Organization EIN" \\
        --proposal-external-id-column-name "Proposal ID"
    python -m pdcsync candid update-all
"""

__version__ = "0.1.0"
