"""Active-task cache, optimistic completion reducer and the completion coordinator."""
