from fastapi import APIRouter
from app.routes import budgets, categories, recommendations, transactions, users

api_router = APIRouter()

api_router.include_router(categories.router, prefix="/categories", tags=["categories"])
api_router.include_router(transactions.router, prefix="/transactions", tags=["transactions"])
api_router.include_router(recommendations.router, prefix="/recommendations", tags=["recommendations"])
api_router.include_router(recommendations.benchmarks_router, prefix="/benchmarks", tags=["benchmarks"])
api_router.include_router(budgets.router, prefix="/budgets", tags=["budgets"])
api_router.include_router(budgets.goals_router, prefix="/goals", tags=["goals"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
