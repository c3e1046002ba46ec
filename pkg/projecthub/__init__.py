# ProjectHub: projects, kanban tasks and notes over a relational data service
#
# Components:
#   schema.py        - Data model (Project, Task, Note + insert/update shapes)
#   client.py        - DataService interface and the REST client
#   store.py         - SQLite backend (local stand-in for the hosted service)
#   auth.py          - Auth providers and the per-session AuthSession
#   sync.py          - View-state synchronizers (load/create/mutate/destroy)
#   navigator.py     - Dashboard <-> Workspace(project, tab) navigation
#   workspace.py     - Dashboard, ProjectWorkspace, ProjectSettings
#   board.py         - Kanban board view
#   notes.py         - Notes editor view
#   notices.py       - Dismissible error notices
#   config.py        - YAML config + backend factories
#   telegram_view.py - Text rendering for the Telegram front end
