"""
Services Layer

Scheduling logic that:
- Accepts domain inputs (ids, dates, an AvailabilityConfig, a ReservationStore)
- Returns domain outputs (ScheduleResult, LifecycleResult, models)
- Does NOT depend on HTTP request/response objects
- Only writes through the ReservationStore's atomic primitives
"""
