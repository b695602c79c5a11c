"""
VAT lookup service package.

The service fronts the EU VIES VAT checking service, enforcing:
- Entitlements: API key registry in the object store + billing subscription
- Usage metering: fixed-window per-key quota kept in the object store
- Resilience: read-through-on-failure cache of VIES answers

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.lookup: Sequencing of meter and validation for one request.
- app.adapters: HTTP clients for VIES and the billing provider.
- app.storage: Object store access, JSON helpers, audit writer.
- app.validation: Fallback engine and the result model.
- app.metering: Windowed usage meter.
- app.entitlements: Entitlement gate.
"""
