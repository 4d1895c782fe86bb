from dotenv import load_dotenv

from fastapi import FastAPI

from gates.api.api_v1 import router as api_v1
from gates.core.config import get_settings
from gates.core.lifespan import lifespan

load_dotenv()  # Load .env variables into os.environ before settings are read


app = FastAPI(title=get_settings().PROJECT_NAME, lifespan=lifespan)


@app.get("/")
def root():
    return {"message": f"Hello from {get_settings().PROJECT_NAME}!"}


app.include_router(api_v1)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
