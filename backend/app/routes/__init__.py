# Routes package init
"""
AiNote Backend — API Routes Package
=====================================

Route Inventory:
    - health.py:  GET    /                      (process + dependency status)
    - notes.py:   POST   /notes                 (save note with AI suggestion)
                  POST   /notes/plain           (save note only)
                  GET    /notes                 (list, newest first)
                  GET    /notes/{id}            (single note)
                  POST   /notes/{id}/advice     (annotate an existing note)
                  DELETE /notes/{id}            (delete one)
                  DELETE /notes                 (delete all)
    - deps.py:    require() admission dependency, get_workflow()

Routes stay thin: they declare required dependencies, call NoteWorkflow and
shape the response. Error responses come from the handlers in main.py.
"""
