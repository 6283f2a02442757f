"""Feature modules: session store access, relationships, communities and alias detection."""
