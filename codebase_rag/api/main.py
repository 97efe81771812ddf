from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from codebase_rag.api.routes.ingest import router as ingest_router
from codebase_rag.api.routes.query import router as query_router

app = FastAPI(
    title="Codebase RAG API",
    description="Chunk, embed and query source trees with LanceDB",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ingest_router)
app.include_router(query_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
