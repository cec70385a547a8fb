"""
clinic_sync - 클리닉 데이터베이스 변경 알림 서비스
"""
