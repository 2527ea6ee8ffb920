# This module handles Context engineering

# +---------------------+      +---------------------+
# |      Services       |      |      Memory         |
# |---------------------|      |---------------------|
# | Viewing-day blocks  |      | Operation ledger    |
# | Task backlog        |      | Response cache      |
# | Unprocessed emails  |      | Conversation turns  |
# | Preferences         |      +---------------------+
# +---------------------+      +---------------------+
#            \                 |      State          |
#             \                |---------------------|
#              \               | Active proposals    |
#               \              +---------------------+
#                \                /
#                 v              v
# +------------------------------+
# |       ContextSnapshot        |   (Rebuilt per message, frozen)
# |------------------------------|
# | Temporal (now vs viewing)    |
# | State (schedule, tasks, ...) |
# | Memory (ops, mentioned)      |
# | Patterns (work hours, ...)   |
# +------------------------------+
#         |
#         v
#   [Intent resolver -> dispatcher]
