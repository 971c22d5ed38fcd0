# This module handles agent memory

# +---------------------+        +---------------------+
# |  SQLiteMemoryStore  |        |    VectorIndex      |   (optional)
# |---------------------|        |---------------------|
# | memory_entries      |        | id -> embedding     |
# | source of truth     |        | cosine top-k        |
# +---------------------+        +---------------------+
#           \                          /
#            \   store: both (index   /
#             \  failures tolerated) /
#              v                    v
#         +------------------------------+
#         |        MemoryManager         |
#         |------------------------------|
#         | retention -> expires_at      |
#         | semantic search, falling     |
#         |   back to lexical query      |
#         | prune: index, then store     |
#         +------------------------------+
#                       |
#                       v
#         +------------------------------+
#         |   AgentMemory (per agent)    |   no-op when memory is disabled
#         +------------------------------+
#                       |
#                       v
#   [consult before generating / route delegation]
