# Services package init
"""
AiNote Backend — Services Layer
=================================

What:  Dependency lifecycle, request admission and note business logic,
       sitting between the routes (HTTP) and the external dependencies.

Service Inventory:
    - DependencyHandle (abstract): one external dependency and its state
    - GeminiService: the AI provider handle (Google Gemini)
    - StoreHandle (app.database): the relational store handle
    - ConnectionSupervisor: owns the handles, brings them up, snapshots readiness
    - AdmissionGate: rejects requests whose dependencies are not READY
    - NoteWorkflow: create / annotate / list / delete notes

Handles and the workflow are created by the application lifespan and passed
explicitly; there are no module-level service singletons.
"""
