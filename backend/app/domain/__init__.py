"""
app/domain - 纯业务规则（不依赖数据库会话）

- availability: 半开区间重叠判定
- booking: 预订生命周期状态机
- folio: 账单汇总重算
- invoice: 间夜数与房费行
"""
