"""Business logic services.

Services contain persistence and business rules and are called by controllers.
Services accept their dependencies (session, user, settings) explicitly.
"""
