# kgmcp

A small knowledge graph tool server. It keeps knowledge base entries and
typed, weighted connections between notes in a SQLite file. It answers
JSON-RPC 2.0 messages on standard input and output, one message per line.

## Install

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Run

```
kgmcp --db knowledge-base.db
```

`--database`, `-db` and `-database` are accepted in place of `--db`. If none
is given, `knowledge-base.db` in the current directory is used. Before the
server starts it creates any missing tables, indexes and triggers, so a new
or missing file is fine.

The server answers `initialize`, `ping`, `tools/list` and `tools/call`.
Messages whose method starts with `notifications/` are accepted and get no
reply. A tool that rejects its arguments or fails in storage gives a
JSON-RPC error whose message says why.

## Tools

Knowledge base entries:

- `create_knowledge_base`: `name` (required), `description`, `tags`
- `get_knowledge_base`: `id`, given as a string of digits
- `update_knowledge_base`: `id`, and any of `name`, `description`, `tags`
- `delete_knowledge_base`: `id`
- `list_knowledge_bases`: `limit` (default 100), `offset` (default 0),
  `search` (matched against name and description), `tags` (an entry must
  carry every tag given); entries come newest first

Connections between notes:

- `create_connection`: `from_note_id`, `to_note_id`, `type` (required);
  `description`, `strength` (1 to 10, default 5), `metadata` (an object).
  A note cannot be connected to itself, and the same two notes can have only
  one connection of each type.
- `get_connection`, `delete_connection`: `id`
- `update_connection`: `id`, and any of `type`, `description`, `strength`,
  `metadata`
- `list_connections`: `limit` (1 to 1000, default 100), `offset`,
  `from_note_id`, `to_note_id`, `type`, `strength`, `order_by`
  (`id`, `created_at`, `updated_at`, `strength`, `type`; default `id`),
  `order_dir` (`asc`, `desc`; default `asc`)
- `get_note_connections`: `note_id` (required), `type`, `strength`,
  `limit`, `offset`; returns the note's outgoing and incoming connections
  with a count per type

Connection ids and note ids may be given as integers, numbers or strings of
digits. The connection types are `relates_to`, `references`, `supports`,
`contradicts`, `influences`, `depends_on`, `similar_to`, `part_of`, `cites`,
`follows` and `precedes`.

## Use from Python

```python
from kgmcp.schema import apply_schema
from kgmcp.knowledgebase_store import KnowledgeBaseStore
from kgmcp.models import CreateRequest, ListRequest

apply_schema("kb.db")
with KnowledgeBaseStore("kb.db") as store:
    kb = store.create(CreateRequest(name="Reading list", tags=["books"]))
    print(store.list(ListRequest(limit=10)).total)
```

- `kgmcp.models` holds the records, request objects, `ConnectionType`, and
  the errors `StorageError` and `NotFoundError`.
- `kgmcp.knowledgebase_store.KnowledgeBaseStore` and
  `kgmcp.connection_store.ConnectionStore` read and write the database;
  `get`, `update` and `delete` raise `NotFoundError` for an unknown id.
  `ConnectionStore` also offers `get_connections_by_type`,
  `get_bidirectional_connections`, `get_connection_stats` and
  `find_connection_paths`, which have no tool of their own.
- `kgmcp.tooling.ToolServer` holds registered tools. `register_tools` in
  `kgmcp.knowledgebase_tools` and `kgmcp.connection_tools` adds the tools
  above to a server, and `kgmcp.server.serve` runs one over any pair of text
  streams.

## What it does not do

- There are no tools or store for notes. The schema creates a `notes` table,
  and connections may only refer to rows in it, but those rows have to be
  written to the database by some other means.
- `find_connection_paths` returns only direct connections from one note to
  the other; its `max_depth` argument is not used.