from prometheus_client import Counter

REWRITES = Counter(
    "proxy_rewrites_total",
    "Number of rewritten redirects, cookies and bodies",
    ["kind"],
)

UPSTREAM_FAILURES = Counter(
    "proxy_upstream_failures_total",
    "Number of exchanges that failed while talking to the upstream",
    ["reason"],
)
