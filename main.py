from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from apis import boards, cards, columns
from helpers.errors import register_exception_handlers
from settings import settings

app = FastAPI(
    title="Kanban Board API",
    version="1.0.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# CORS middleware for development
if settings.environment == "development":
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH"],
        allow_headers=["*"],
    )

register_exception_handlers(app)

app.include_router(boards.router, prefix="/api")
app.include_router(cards.router, prefix="/api")
app.include_router(columns.router, prefix="/api")


@app.get("/api/health")
async def root():
    """API health check."""
    return {"message": "Kanban Board API is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
