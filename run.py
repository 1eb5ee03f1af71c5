import uvicorn
import logging
logging.basicConfig(level=logging.INFO)
logging.getLogger("alerts").setLevel(logging.DEBUG)
logging.getLogger("control").setLevel(logging.DEBUG)

uvicorn.run("app.main:app", host="0.0.0.0", port=4000, reload=False)
