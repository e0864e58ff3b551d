# Task board ordering: position keys, optimistic overlay and drag-drop moves
#
# Components:
#   order_key.py   - Sortable base36 position keys (fractional indexing)
#   schema.py      - Data model (Item, ColumnDefinition, DropPosition, DragState)
#   overlay.py     - Optimistic per-column order and pending field patches
#   reconcile.py   - Canonical order and overlay reconciliation (column assembly)
#   moves.py       - Drag-drop state machine, key generation and persistence
#   rules.py       - Drop-validity predicates (project vs personal columns)
#   board.py       - Parameterized board wiring everything together
#   store.py       - Item store contract and SQLite backend
#   http_store.py  - Task API backend
#   poller.py      - Periodic snapshot refresh
#   config.py      - YAML configuration
