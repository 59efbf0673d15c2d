"""Draft staging: session store, stage manager and the draft state machine."""
