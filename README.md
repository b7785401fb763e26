# astor

Building blocks for the Astor digital currency system, as a library of in-memory services:

- `astor.ledger`: a tamper-evident ledger. Each entry is chained to the one before it by a SHA-256 hash. The ledger tracks total supply and account balances.
- `astor.conversion`: exchange rates and currency conversion, with fees and a slippage check. Live rates are fetched with `httpx`.
- `astor.feature_flags`: feature flags with rollout percentages and conditions, served by a local or a remote (HTTP) provider.
- `astor.secret_manager`: secrets from environment variables or a JSON file, with caching, a strength check and random generation.
- `astor.compliance`: a bounded log of compliance events, GDPR consent and privacy-request records, and reports.
- `astor.health`: component health checks and an overall system status.
- `astor.metrics`: counters, gauges and histograms, exported in the Prometheus text format.
- `astor.monitoring`: `MonitoringSystem`, which starts and stops metrics, health checks and compliance monitoring together.
- `astor.interoperability`: cross-chain bridges and the transfers made over them.

Every error the package raises is a subclass of `astor.errors.AstorError`, for example `LedgerError`, `ConversionError`, `ConfigurationError`, `NotFoundError` and `InvalidInputError`.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Ledger

```python
from astor.ledger import Ledger

ledger = Ledger()
ledger.record_account_creation("alice")
ledger.record_issuance("tx-1", "root", "alice", 1_000)
ledger.record_transfer("tx-2", "alice", "bob", 250)

assert ledger.total_supply == 1_000
assert ledger.balance("alice") == 750
assert ledger.verify_integrity()
```

`entries` returns the entries as a tuple. A transfer larger than the sender's balance raises `LedgerError`. So does a supply or balance that would pass the unsigned 64-bit limit. `hash_data` returns the hex SHA-256 digest of the bytes it is given.

## Currency conversion

```python
from datetime import datetime, timezone
from astor.conversion import ConversionService, ExchangeRate

service = ConversionService()
service.update_exchange_rate(ExchangeRate(
    from_currency="ASTOR", to_currency="EUR", rate=0.85, bid=0.849, ask=0.851,
    timestamp=datetime.now(timezone.utc), source="manual",
    volatility=0.01, daily_change=0.0,
))

print(service.convert_amount(1_000, "ASTOR", "EUR"))  # 850
print(service.convert_amount(850, "EUR", "ASTOR"))    # 1000, through the reverse rate
```

- `get_exchange_rate` uses the direct pair. If that pair is missing, it returns the inverse of the reverse pair. If neither is known, it raises `TransactionValidationError`.
- `convert_amount` rounds to the nearest whole unit. It returns the amount unchanged when both currencies are the same.
- `get_exchange_rate_info` returns the stored `ExchangeRate` for the direct pair only. It raises `ConversionError` when the pair is missing.

### Converting with fees

`convert_with_fees(amount, from_currency, to_currency, max_slippage=None)` is a coroutine. It works in this order:

1. It calls `fetch_live_rates`, unless rates were fetched within the cache period (`rate_cache_duration`, 300 seconds by default).
2. It looks up the direct pair.
3. It raises `ConversionError` if the rate's volatility exceeds `max_slippage`.
4. It deducts a fee set by the target currency. The fee is 0.1% to 0.2% for the built-in currencies, and 0.1% for any other.

It returns a `ConversionResult`.

`fetch_live_rates` tries the providers in this order: exchangerate-api, then Fixer, then CurrencyLayer. The first one that does not raise ends the attempt. Fixer and CurrencyLayer are used only with a key set through `add_api_key("fixer", ...)` or `add_api_key("currencylayer", ...)`. A provider without a key does nothing and counts as answered. The built-in fallback rates, from `ASTOR` to each supported currency, are loaded only when every provider raises.

You can pass an `httpx.AsyncClient` as `client=` to the constructor.

`supported_currencies` lists USD, EUR, GBP, JPY, CAD, AUD, CHF, CNY and ASTOR. `is_supported_currency` checks a currency against that list.

## Feature flags

```python
import asyncio
from astor.feature_flags import EvaluationContext, FeatureFlagManager, LocalProvider

async def main():
    manager = FeatureFlagManager(LocalProvider({"new_dashboard": True}), refresh_interval=60)
    await manager.refresh()
    context = EvaluationContext(environment="production", user_id="u1")
    print(manager.is_enabled("new_dashboard", context))

asyncio.run(main())
```

A flag is on when three things hold:

- It is enabled.
- The user falls inside its rollout percentage. The bucket is derived from a hash of the user id and the flag key.
- All of its conditions hold: `UserRoleCondition`, `EnvironmentCondition`, `UserAttributeCondition`, `TimeWindowCondition`. A `CustomCondition` always passes.

`get_flag_value` returns the flag's `metadata["value"]` when the flag is on and the value fits the type of the default. Otherwise it returns the default.

`start_refresh_task` loads the flags and then reloads them every `refresh_interval` seconds, until `stop_refresh_task` is called.

`RemoteProvider(endpoint, api_key)` reads `GET {endpoint}/flags` and `GET {endpoint}/flags/{key}` with a bearer token. A 404 from the second means the flag does not exist. `flag_from_dict` builds a `FeatureFlag` from its JSON form.

## Secrets

```python
from astor.secret_manager import generate_secure_secret, validate_secret_strength

secret_value = generate_secure_secret(32)
validate_secret_strength(secret_value, 16)  # returns the value, or raises ConfigurationError
```

`validate_secret_strength` rejects a secret for any of these reasons:

- It is shorter than the minimum, measured in UTF-8 bytes.
- It contains "password" or "secret" in any case.
- It equals "123456" or "admin".

`SecretManager(SecretsProvider.ENVIRONMENT)` reads environment variables. `SecretManager(SecretsProvider.FILE, path=...)` reads a JSON object of strings. Values are cached for `cache_ttl` seconds (300 by default). `refresh_cache` re-reads the cached keys whose entries have expired, and `clear_cache` empties the cache.

## Compliance

`ComplianceMonitor` keeps the last 100,000 events (`max_events`). The event types are `DataAccessEvent`, `DataRetentionEvent`, `PrivacyRequestEvent`, `AuditTrailEvent`, `SecurityIncidentEvent` and `ComplianceViolationEvent`.

- `record_consent` stores a `ConsentRecord` and logs a data-access event.
- `process_privacy_request` stores a pending `PrivacyRequest` and returns its id.
- `generate_report` returns a `ComplianceReport` of the events inside an inclusive time range, with a `ComplianceSummary`.
- `export_audit_data` returns an audit-trail report as indented JSON.

## Health, metrics and monitoring

`HealthChecker` runs the checks named in `HealthCheckConfig.checks`:

- `database` and `redis` run probes. By default these only wait briefly; pass your own with `probes=`.
- `disk_space` and `memory` read real usage. They report degraded above 80% and unhealthy above 90%.

`get_status` reports unhealthy if any check is unhealthy, then degraded if any check is degraded, and healthy otherwise.

`MetricsCollector` exposes these metrics:

- HTTP request count, duration histogram and in-flight gauge.
- Transaction counts.
- Total currency issued.
- Active accounts.
- Database and Redis connection gauges.
- Process memory and CPU.
- Failed logins and security violations.

Business metrics such as `TransactionCreated` or `CurrencyIssued` go through `record_business_metric`. `export_metrics()` returns the Prometheus text format.

`MonitoringSystem` ties the three together. Start it inside a running event loop with `await system.start()` and stop it with `await system.stop()`.

## Cross-chain bridges

`InteroperabilityManager.create_bridge` registers a bridge that is active and needs 12 confirmations.

`initiate_cross_chain_transfer` opens a pending transfer. It raises `NotFoundError` for an unknown bridge and `InvalidInputError` for an inactive one.

`process_confirmations` records the confirmation count. Once the bridge's minimum is reached, it marks the transfer completed, with a randomly generated target transaction hash. `get_transaction` returns a transfer by id.

## What this package does not do

- It has no command-line program and no HTTP API server.
- It keeps everything in memory. There is no database or other persistent storage.
- It does not issue currency through a central bank, and it does not manage accounts, administrators, payments or certificates.
- Cross-chain transfers are not submitted to any real chain.
- The Vault, AWS, Azure and Google secret providers raise `ConfigurationError`.