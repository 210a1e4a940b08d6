"""pagemind: a synced, memory-augmented question answering index over a page workspace."""
