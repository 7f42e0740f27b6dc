"""
Services module for business logic.

- domain/: Application services (sessions, carts, upsell, orders, loyalty,
  personalization)
- notifications.py: Push dispatch to cafe staff devices
- clock.py: Cafe-local time lookup

Usage:
    from cafe_api.services.domain import CartService
    service = CartService(db)
    result = service.add_items(body, user_id)
"""
