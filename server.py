import os
import uvicorn
import importlib

# --------- CONFIG ---------
MAIN_FILE = "runway_mcp_server"  # Module that builds the ASGI app
APP_NAME = "app"                 # The variable name of the ASGI app inside that module
# --------------------------

# Dynamically import the app
module = importlib.import_module(MAIN_FILE)
app = getattr(module, APP_NAME)

if __name__ == "__main__":
    # Hosting platforms provide the PORT environment variable
    port = int(os.environ.get("PORT", 8081))
    uvicorn.run(app, host="0.0.0.0", port=port)
