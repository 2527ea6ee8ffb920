# State = what is pending between chat turns for a user.

# Workflow proposals waiting for "approve" (10 minute lifetime)

# Nothing here is needed to interpret a message on its own; the context
# assembler reads active proposals into memory.active_proposals
