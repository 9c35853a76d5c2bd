"""Order Service — 注文管理マイクロサービス"""
