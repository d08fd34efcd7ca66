"""Qt host window and pyqtgraph render surface for the gamma overlay."""
