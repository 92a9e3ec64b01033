"""PAC script synthesis.

The text produced by :func:`render_pac_script` is installed verbatim into the
browser proxy evaluator, so its classification logic must stay exactly in step
with :func:`find_proxy_for_host`, which is the same decision written in Python.
"""
from __future__ import annotations

import json
from typing import Iterable

from .errors import EmptyPolicyError
from .hostnames import binary_search, second_level_domain

PAC_MIME_TYPE = "application/x-ns-proxy-autoconfig"
DIRECT = "DIRECT"

PAC_TEMPLATE = """
function FindProxyForURL(url, host) {
  function isHostBlocked(array, target) {
    let left = 0;
    let right = array.length - 1;

    while (left <= right) {
      const mid = left + Math.floor((right - left) / 2);

      if (array[mid] === target) {
        return true;
      }

      if (array[mid] < target) {
        left = mid + 1;
      } else {
        right = mid - 1;
      }
    }
    return false;
  }

  // Remove ending dot
  if (host.endsWith('.')) {
    host = host.substring(0, host.length - 1);
  }

  // Make domain second-level.
  let lastDot = host.lastIndexOf('.');
  if (lastDot !== -1) {
    lastDot = host.lastIndexOf('.', lastDot - 1);
    if (lastDot !== -1) {
      host = host.substr(lastDot + 1);
    }
  }

  // Domains, which are blocked.
  let domains = __DOMAINS__;

  // Return result
  if (isHostBlocked(domains, host)) {
    return '__ROUTE__';
  } else {
    return 'DIRECT';
  }
}"""


def prepare_blocklist(domains: Iterable[str]) -> list[str]:
    return sorted({d for d in domains if d})


def proxy_route(endpoint: str) -> str:
    return f"HTTPS {endpoint};"


def render_pac_script(domains: Iterable[str], endpoint: str) -> str:
    if not endpoint or any(ch in endpoint for ch in "'\\\r\n"):
        raise ValueError(f"Invalid proxy endpoint: {endpoint!r}")
    blocklist = prepare_blocklist(domains)
    if not blocklist:
        raise EmptyPolicyError("blocklist is empty")
    domains_literal = json.dumps(blocklist, ensure_ascii=False)
    return PAC_TEMPLATE.replace("__DOMAINS__", domains_literal).replace(
        "__ROUTE__", proxy_route(endpoint)
    )


def find_proxy_for_host(blocklist: list[str], host: str, endpoint: str) -> str:
    """Return what the rendered script answers for ``host``.

    ``blocklist`` must already be sorted, as produced by ``prepare_blocklist``.
    """
    if binary_search(blocklist, second_level_domain(host)):
        return proxy_route(endpoint)
    return DIRECT
