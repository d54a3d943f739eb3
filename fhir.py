"""
FHIR R4 JSON helpers shared by the HTTP routes: OperationOutcome, Bundles,
ETags and search control parameters.
"""

import hashlib
import html
import json
from typing import Any, Dict, List, Optional

from fastapi import Request

import config


def get_base_url(request: Request) -> str:
    """Get the base URL for this request"""
    if config.BASE_URL != 'http://localhost:8000':
        return config.BASE_URL.rstrip('/')
    return f"{request.url.scheme}://{request.url.netloc}"


def generate_etag(data: Any) -> str:
    """Generate a content hash for bundles and other unversioned payloads"""
    if isinstance(data, dict):
        content = json.dumps(data, sort_keys=True, separators=(',', ':'))
    else:
        content = str(data)
    return hashlib.md5(content.encode('utf-8')).hexdigest()


def version_etag(resource: Dict) -> str:
    """Weak ETag carrying the resource's version id"""
    return f'W/"{resource["meta"]["versionId"]}"'


def etag_matches(if_none_match: Optional[str], etag_value: str) -> bool:
    """Compare an If-None-Match header against a bare ETag value"""
    if not if_none_match:
        return False
    candidates = [tag.strip() for tag in if_none_match.split(',')]
    for tag in candidates:
        if tag == '*':
            return True
        if tag.startswith('W/'):
            tag = tag[2:]
        if tag.strip('"') == etag_value:
            return True
    return False


def create_operation_outcome(severity: str, code: str, diagnostics: str) -> Dict:
    """Create a FHIR OperationOutcome response"""
    return {
        "resourceType": "OperationOutcome",
        "issue": [{
            "severity": severity,
            "code": code,
            "diagnostics": diagnostics
        }]
    }


class FHIRSearchParameters:
    """
    Parse the search control parameters.

    Only _count, _format and _summary are understood. Filter parameters are
    accepted and ignored.
    """

    def __init__(self, query_params: dict):
        self.params = query_params
        self._count = self._parse_count(query_params.get('_count'))
        self._format = self._parse_format(query_params.get('_format'))
        self._summary = query_params.get('_summary')

    def _parse_count(self, count_param: Optional[str]) -> Optional[int]:
        """Parse _count parameter according to FHIR spec"""
        if count_param is None:
            return None
        try:
            count = int(count_param)
            return max(0, count)  # negative values become 0
        except ValueError:
            return None

    def _parse_format(self, format_param: Optional[str]) -> str:
        """Parse _format parameter according to FHIR spec"""
        if format_param is None:
            return "json"

        format_param = format_param.lower()
        if format_param in ["json", "application/json", "application/fhir+json"]:
            return "json"
        elif format_param in ["html", "text/html"]:
            return "html"
        else:
            return "json"

    @property
    def count(self) -> Optional[int]:
        return self._count

    @property
    def format(self) -> str:
        return self._format

    @property
    def summary(self) -> Optional[str]:
        return self._summary

    def get_count(self, default: Optional[int] = None, max_limit: int = 1000) -> Optional[int]:
        """Get _count with default and maximum enforcement. None means no limit."""
        if self._count is None:
            if default is None:
                return None
            return min(default, max_limit)
        return min(self._count, max_limit)


def create_fhir_bundle(
    resources: List[Dict],
    resource_type: str,
    base_url: str,
    total_matches: int,
    self_url: str
) -> Dict:
    """
    Create a FHIR searchset Bundle.

    Bundle.total counts every match, Bundle.entry holds only this page.
    """
    return {
        "resourceType": "Bundle",
        "type": "searchset",
        "total": total_matches,
        "link": [{
            "relation": "self",
            "url": self_url
        }],
        "entry": [
            {
                "fullUrl": f"{base_url}/{resource_type}/{resource['id']}",
                "resource": resource,
                "search": {"mode": "match"}
            }
            for resource in resources
        ]
    }


def create_history_bundle(versions: List[Dict], resource_type: str, base_url: str, self_url: str) -> Dict:
    """Create a FHIR history Bundle from versions ordered newest first"""
    entries = []
    for resource in versions:
        version_id = resource["meta"]["versionId"]
        entries.append({
            "fullUrl": f"{base_url}/{resource_type}/{resource['id']}",
            "resource": resource,
            "request": {
                "method": "POST" if version_id == "1" else "PUT",
                "url": resource_type if version_id == "1" else f"{resource_type}/{resource['id']}"
            },
            "response": {
                "status": "201 Created" if version_id == "1" else "200 OK",
                "etag": version_etag(resource)
            }
        })

    return {
        "resourceType": "Bundle",
        "type": "history",
        "total": len(versions),
        "link": [{
            "relation": "self",
            "url": self_url
        }],
        "entry": entries
    }


def render_bundle_html(bundle: Dict, resource_type: str) -> str:
    """Simple HTML representation of a search Bundle for human readability"""
    resource_type = html.escape(resource_type)
    body = html.escape(json.dumps(bundle, indent=2))
    return f"""
        <html>
        <head><title>FHIR {resource_type} Search Results</title></head>
        <body>
        <h1>{resource_type} Search Results</h1>
        <p>Total matches: {bundle.get('total', 0)}</p>
        <p>Resources in this page: {len(bundle.get('entry', []))}</p>
        <pre>{body}</pre>
        </body>
        </html>
        """
