import os

# Widgets and QPainter need a platform plugin; tests never open a real window
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
