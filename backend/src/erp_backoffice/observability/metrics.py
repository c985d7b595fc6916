"""Prometheus metrics for the back office API."""

from prometheus_client import Counter

login_attempts_total = Counter(
    "erp_login_attempts_total",
    "Login attempts by outcome",
    ["outcome"]  # success, or the lower-cased failure reason (invalid_password, trial_expired, ...)
)

account_lockouts_total = Counter(
    "erp_account_lockouts_total",
    "Logins rejected because the account or IP is locked",
    ["tier"]
)

permission_denied_total = Counter(
    "erp_permission_denied_total",
    "Requests rejected by permission or company-context checks",
    ["reason"]  # no_company_access | insufficient_permission | tier1_required | admin_required
)

tenant_isolation_violations_total = Counter(
    "erp_tenant_isolation_violations_total",
    "Statements rejected by the tenant isolation hook",
    ["operation"]  # query | update | delete | insert | tenant_change
)

cleanup_deleted_total = Counter(
    "erp_cleanup_deleted_total",
    "Rows removed by scheduled cleanup jobs",
    ["job"]
)
